"""LODA tool definitions for MCP.

Provides MCP tools that wrap the LODA API: sequence and program lookup,
search, remote evaluation, export, submissions and project statistics.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from ..registry import MCPServerRegistry
from ..types import (
    MCPError,
    MCPErrorCode,
    MCPToolResult,
    MCPToolSpec,
    create_tool_input_schema,
)
from . import formatting
from .args import (
    DEFAULT_EVAL_TERMS,
    DEFAULT_LIMIT,
    EXPORT_FORMATS,
    MAX_EVAL_TERMS,
    MAX_LIMIT,
    MIN_LIMIT,
    SEQUENCE_ID_PATTERN,
    EvalProgramArgs,
    ExportProgramArgs,
    GetProgramArgs,
    GetSequenceArgs,
    ListSubmissionsArgs,
    NoArgs,
    SearchArgs,
    SubmitProgramArgs,
)

if TYPE_CHECKING:
    from ...api_client.client import LODAApiClient

logger = structlog.get_logger(__name__)

CATEGORY_SEQUENCES = "sequences"
CATEGORY_PROGRAMS = "programs"
CATEGORY_STATS = "stats"


def _id_property(description: str) -> dict[str, Any]:
    return {
        "type": "string",
        "pattern": SEQUENCE_ID_PATTERN,
        "description": description,
    }


def _paging_properties() -> dict[str, dict[str, Any]]:
    return {
        "limit": {
            "type": "integer",
            "minimum": MIN_LIMIT,
            "maximum": MAX_LIMIT,
            "default": DEFAULT_LIMIT,
            "description": f"Maximum number of results ({MIN_LIMIT}-{MAX_LIMIT}, default: {DEFAULT_LIMIT})",
        },
        "skip": {
            "type": "integer",
            "minimum": 0,
            "default": 0,
            "description": "Number of results to skip for pagination (default: 0)",
        },
    }


def _expect_object(payload: Any, what: str) -> dict[str, Any]:
    """Ensure the API returned a JSON object.

    Raises:
        MCPError: INTERNAL_ERROR if the payload has another shape
    """
    if not isinstance(payload, dict):
        raise MCPError(
            code=MCPErrorCode.INTERNAL_ERROR,
            message=f"Malformed response from LODA API: expected a {what} object",
            data={"received": type(payload).__name__},
        )
    return payload


def _expect_list(payload: Any, what: str) -> list[dict[str, Any]]:
    if not isinstance(payload, list):
        raise MCPError(
            code=MCPErrorCode.INTERNAL_ERROR,
            message=f"Malformed response from LODA API: expected a list of {what}",
            data={"received": type(payload).__name__},
        )
    return payload


def _search_result(kind: str, query: str, payload: dict[str, Any]) -> MCPToolResult:
    results = payload.get("results") or []
    structured = {
        "total": payload.get("total", len(results)),
        "results": results,
    }
    return MCPToolResult.text(
        formatting.format_search_results(kind, query, payload),
        structured_content=structured,
    )


def create_get_sequence_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the get_sequence tool."""

    async def handler(args: GetSequenceArgs) -> MCPToolResult:
        sequence = _expect_object(await api_client.get_sequence(args.id), "sequence")
        return MCPToolResult.text(
            formatting.format_sequence(sequence),
            structured_content=sequence,
        )

    return MCPToolSpec(
        name="get_sequence",
        description=(
            "Get an integer sequence from the OEIS by its ID (e.g. A000045 for the "
            "Fibonacci numbers). Returns its name, keywords and first terms."
        ),
        input_schema=create_tool_input_schema(
            properties={"id": _id_property("OEIS sequence ID, e.g. A000045")},
            required=["id"],
        ),
        arguments_model=GetSequenceArgs,
        handler=handler,
        category=CATEGORY_SEQUENCES,
    )


def create_search_sequences_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the search_sequences tool."""

    async def handler(args: SearchArgs) -> MCPToolResult:
        payload = _expect_object(
            await api_client.search_sequences(args.q, limit=args.limit, skip=args.skip),
            "search result",
        )
        return _search_result("sequence(s)", args.q, payload)

    return MCPToolSpec(
        name="search_sequences",
        description=(
            "Search OEIS sequences by name or keyword. Supports pagination via "
            "limit and skip."
        ),
        input_schema=create_tool_input_schema(
            properties={
                "q": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Search query (words in the name, or keywords)",
                },
                **_paging_properties(),
            },
            required=["q"],
        ),
        arguments_model=SearchArgs,
        handler=handler,
        category=CATEGORY_SEQUENCES,
    )


def create_get_program_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the get_program tool."""

    async def handler(args: GetProgramArgs) -> MCPToolResult:
        program = _expect_object(await api_client.get_program(args.id), "program")
        return MCPToolResult.text(
            formatting.format_program(program),
            structured_content=program,
        )

    return MCPToolSpec(
        name="get_program",
        description=(
            "Get the LODA program that computes a sequence, identified by the "
            "sequence ID (e.g. A000045). Returns the program code and metadata."
        ),
        input_schema=create_tool_input_schema(
            properties={"id": _id_property("Program ID (same as the sequence ID), e.g. A000045")},
            required=["id"],
        ),
        arguments_model=GetProgramArgs,
        handler=handler,
        category=CATEGORY_PROGRAMS,
    )


def create_search_programs_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the search_programs tool."""

    async def handler(args: SearchArgs) -> MCPToolResult:
        payload = _expect_object(
            await api_client.search_programs(args.q, limit=args.limit, skip=args.skip),
            "search result",
        )
        return _search_result("program(s)", args.q, payload)

    return MCPToolSpec(
        name="search_programs",
        description=(
            "Search LODA programs by name, keyword or submitter. Supports "
            "pagination via limit and skip."
        ),
        input_schema=create_tool_input_schema(
            properties={
                "q": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Search query",
                },
                **_paging_properties(),
            },
            required=["q"],
        ),
        arguments_model=SearchArgs,
        handler=handler,
        category=CATEGORY_PROGRAMS,
    )


def create_eval_program_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the eval_program tool.

    The program is evaluated by the LODA API, not locally.
    """

    async def handler(args: EvalProgramArgs) -> MCPToolResult:
        result = _expect_object(
            await api_client.eval_program(args.code, num_terms=args.num_terms, offset=args.offset),
            "evaluation result",
        )
        return MCPToolResult.text(
            formatting.format_eval_result(args.code, result),
            structured_content=result,
        )

    return MCPToolSpec(
        name="eval_program",
        description=(
            "Evaluate LODA assembly code on the LODA API and return the computed "
            "sequence terms."
        ),
        input_schema=create_tool_input_schema(
            properties={
                "code": {
                    "type": "string",
                    "minLength": 1,
                    "description": "LODA program source code",
                },
                "num_terms": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": MAX_EVAL_TERMS,
                    "default": DEFAULT_EVAL_TERMS,
                    "description": f"Number of terms to compute (default: {DEFAULT_EVAL_TERMS})",
                },
                "offset": {
                    "type": "integer",
                    "description": "Index of the first term (optional)",
                },
            },
            required=["code"],
        ),
        arguments_model=EvalProgramArgs,
        handler=handler,
        category=CATEGORY_PROGRAMS,
    )


def create_export_program_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the export_program tool."""

    async def handler(args: ExportProgramArgs) -> MCPToolResult:
        exported = await api_client.export_program(args.id, args.format)
        if not isinstance(exported, str):
            exported = exported.get("content", "") if isinstance(exported, dict) else str(exported)
        return MCPToolResult.text(
            formatting.format_export(args.id, args.format, exported),
            structured_content={"id": args.id, "format": args.format, "content": exported},
        )

    return MCPToolSpec(
        name="export_program",
        description=(
            "Export a LODA program in another representation: plain LODA, a "
            "closed formula, PARI/GP or Lean."
        ),
        input_schema=create_tool_input_schema(
            properties={
                "id": _id_property("Program ID, e.g. A000045"),
                "format": {
                    "type": "string",
                    "enum": list(EXPORT_FORMATS),
                    "description": "Export format",
                },
            },
            required=["id", "format"],
        ),
        arguments_model=ExportProgramArgs,
        handler=handler,
        category=CATEGORY_PROGRAMS,
    )


def create_submit_program_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the submit_program tool."""

    async def handler(args: SubmitProgramArgs) -> MCPToolResult:
        result = _expect_object(
            await api_client.submit_program(args.id, args.code),
            "submission result",
        )
        logger.info("loda_program_submitted", program_id=args.id, status=result.get("status"))
        return MCPToolResult.text(
            formatting.format_submission(args.id, result),
            structured_content=result,
        )

    return MCPToolSpec(
        name="submit_program",
        description=(
            "Submit a new or improved LODA program for a sequence. The submission "
            "is checked by the LODA project before it is accepted."
        ),
        input_schema=create_tool_input_schema(
            properties={
                "id": _id_property("Target sequence ID, e.g. A000045"),
                "code": {
                    "type": "string",
                    "minLength": 1,
                    "description": "LODA program source code",
                },
            },
            required=["id", "code"],
        ),
        arguments_model=SubmitProgramArgs,
        handler=handler,
        category=CATEGORY_PROGRAMS,
    )


def create_list_submissions_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the list_submissions tool."""

    async def handler(args: ListSubmissionsArgs) -> MCPToolResult:
        payload = _expect_object(
            await api_client.list_submissions(limit=args.limit, skip=args.skip),
            "submission list",
        )
        results = payload.get("results") or []
        return MCPToolResult.text(
            formatting.format_submissions(payload),
            structured_content={"total": payload.get("total", len(results)), "results": results},
        )

    return MCPToolSpec(
        name="list_submissions",
        description="List pending program submissions. Supports pagination via limit and skip.",
        input_schema=create_tool_input_schema(properties=_paging_properties()),
        arguments_model=ListSubmissionsArgs,
        handler=handler,
        category=CATEGORY_PROGRAMS,
    )


def create_get_stats_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the get_stats tool."""

    async def handler(args: NoArgs) -> MCPToolResult:
        stats = _expect_object(await api_client.get_stats_summary(), "statistics")
        return MCPToolResult.text(formatting.format_stats(stats), structured_content=stats)

    return MCPToolSpec(
        name="get_stats",
        description="Get summary statistics of the LODA project: number of sequences, programs and formulas.",
        input_schema=create_tool_input_schema(properties={}),
        arguments_model=NoArgs,
        handler=handler,
        category=CATEGORY_STATS,
    )


def create_get_keywords_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the get_keywords tool."""

    async def handler(args: NoArgs) -> MCPToolResult:
        keywords = _expect_list(await api_client.get_keywords(), "keywords")
        return MCPToolResult.text(
            formatting.format_keywords(keywords),
            structured_content={"keywords": keywords},
        )

    return MCPToolSpec(
        name="get_keywords",
        description="List the keywords used to classify sequences and programs, with usage counts.",
        input_schema=create_tool_input_schema(properties={}),
        arguments_model=NoArgs,
        handler=handler,
        category=CATEGORY_STATS,
    )


def create_get_submitters_tool(api_client: LODAApiClient) -> MCPToolSpec:
    """Create the get_submitters tool."""

    async def handler(args: NoArgs) -> MCPToolResult:
        submitters = _expect_list(await api_client.get_submitters(), "submitters")
        return MCPToolResult.text(
            formatting.format_submitters(submitters),
            structured_content={"submitters": submitters},
        )

    return MCPToolSpec(
        name="get_submitters",
        description="List the contributors of LODA programs with their program counts.",
        input_schema=create_tool_input_schema(properties={}),
        arguments_model=NoArgs,
        handler=handler,
        category=CATEGORY_STATS,
    )


def register_loda_tools(
    registry: MCPServerRegistry,
    api_client: LODAApiClient,
) -> list[str]:
    """Register all LODA tools with the registry.

    Registration order is the discovery order reported by ``tools/list``.

    Args:
        registry: MCP server registry
        api_client: LODA API adapter shared by all handlers

    Returns:
        List of registered tool names
    """
    tools = [
        create_get_sequence_tool(api_client),
        create_search_sequences_tool(api_client),
        create_get_program_tool(api_client),
        create_search_programs_tool(api_client),
        create_eval_program_tool(api_client),
        create_export_program_tool(api_client),
        create_submit_program_tool(api_client),
        create_list_submissions_tool(api_client),
        create_get_stats_tool(api_client),
        create_get_keywords_tool(api_client),
        create_get_submitters_tool(api_client),
    ]

    registered = []
    for tool in tools:
        registry.register(tool)
        registered.append(tool.name)

    logger.info(
        "loda_tools_registered",
        tools=registered,
        count=len(registered),
    )

    return registered
