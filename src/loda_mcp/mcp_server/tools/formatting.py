"""Human-readable renderings of LODA API responses."""

from __future__ import annotations

from typing import Any, Iterable

NO_RESULTS = "No results found."
MAX_TERMS_SHOWN = 20
RULE = "=" * 50


def _join_terms(terms: Iterable[Any], limit: int = MAX_TERMS_SHOWN) -> str:
    terms = [str(t) for t in terms]
    joined = ", ".join(terms[:limit])
    if len(terms) > limit:
        joined += ", ..."
    return joined


def _keywords(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(k) for k in value)
    return str(value)


def format_sequence(sequence: dict[str, Any]) -> str:
    lines = [
        f"Sequence {sequence.get('id', '?')}: {sequence.get('name', '')}",
        RULE,
    ]
    terms = sequence.get("terms") or []
    if terms:
        lines.append(f"Terms: {_join_terms(terms)}")
    if sequence.get("keywords"):
        lines.append(f"Keywords: {_keywords(sequence['keywords'])}")
    for key, label in (
        ("formula", "Formula"),
        ("author", "Author"),
        ("submitter", "Submitter"),
    ):
        if sequence.get(key):
            lines.append(f"{label}: {sequence[key]}")
    return "\n".join(lines)


def format_program(program: dict[str, Any]) -> str:
    lines = [
        f"Program {program.get('id', '?')}: {program.get('name', '')}",
        RULE,
    ]
    if program.get("submitter"):
        lines.append(f"Submitter: {program['submitter']}")
    if program.get("keywords"):
        lines.append(f"Keywords: {_keywords(program['keywords'])}")
    if program.get("formula"):
        lines.append(f"Formula: {program['formula']}")
    code = program.get("code")
    if code:
        lines.extend(["", code.rstrip()])
    return "\n".join(lines)


def format_search_results(kind: str, query: str, payload: dict[str, Any]) -> str:
    """Render a paged search response.

    An empty page renders as exactly ``NO_RESULTS``.
    """
    results = payload.get("results") or []
    if not results:
        return NO_RESULTS
    total = payload.get("total", len(results))
    lines = [f"Found {total} {kind} matching '{query}':"]
    for item in results:
        line = f"- {item.get('id', '?')}: {item.get('name', '')}"
        if item.get("keywords"):
            line += f" [{_keywords(item['keywords'])}]"
        lines.append(line)
    return "\n".join(lines)


def format_eval_result(code: str, result: dict[str, Any]) -> str:
    status = result.get("status", "unknown")
    terms = result.get("terms") or []
    lines = [
        "Program evaluation",
        RULE,
        f"Status: {status}",
        f"Computed {len(terms)} term(s): {_join_terms(terms, limit=len(terms))}",
    ]
    if result.get("message"):
        lines.append(f"Message: {result['message']}")
    lines.extend(["", code.strip()])
    return "\n".join(lines)


def format_export(program_id: str, fmt: str, exported: Any) -> str:
    body = exported if isinstance(exported, str) else str(exported)
    return f"Program {program_id} exported as {fmt}:\n\n{body.rstrip()}"


def format_submission(program_id: str, result: dict[str, Any]) -> str:
    status = result.get("status", "unknown")
    text = f"Submission for {program_id}: {status}"
    if result.get("message"):
        text += f"\n{result['message']}"
    return text


def format_submissions(payload: dict[str, Any]) -> str:
    results = payload.get("results") or []
    if not results:
        return NO_RESULTS
    total = payload.get("total", len(results))
    lines = [f"{total} submission(s):"]
    for item in results:
        line = f"- {item.get('id', '?')} ({item.get('mode', '?')} {item.get('type', '?')})"
        if item.get("submitter"):
            line += f" by {item['submitter']}"
        lines.append(line)
    return "\n".join(lines)


def format_stats(stats: dict[str, Any]) -> str:
    def _count(key: str) -> str:
        value = stats.get(key)
        return f"{value:,}" if isinstance(value, int) else str(value)

    return "\n".join(
        [
            "LODA project statistics",
            RULE,
            f"Sequences: {_count('numSequences')}",
            f"Programs: {_count('numPrograms')}",
            f"Formulas: {_count('numFormulas')}",
        ]
    )


def format_keywords(keywords: list[dict[str, Any]]) -> str:
    if not keywords:
        return NO_RESULTS
    lines = ["Keywords:"]
    for kw in keywords:
        line = f"- {kw.get('name', '?')}"
        if kw.get("description"):
            line += f": {kw['description']}"
        counts = [
            f"{kw[key]} {label}"
            for key, label in (("numSequences", "sequences"), ("numPrograms", "programs"))
            if key in kw
        ]
        if counts:
            line += f" ({', '.join(counts)})"
        lines.append(line)
    return "\n".join(lines)


def format_submitters(submitters: list[dict[str, Any]]) -> str:
    if not submitters:
        return NO_RESULTS
    lines = ["Submitters:"]
    for sub in submitters:
        lines.append(f"- {sub.get('name', '?')}: {sub.get('numPrograms', 0)} program(s)")
    return "\n".join(lines)
