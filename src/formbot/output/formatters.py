"""Rich/JSON rendering of ServiceResult.

Human output is rendered through a StringIO-backed rich Console, so it is
plain text under CliRunner and pipes. ``--json`` dumps the model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.text import Text

from formbot.output.console import create_console, get_output

if TYPE_CHECKING:
    from rich.console import Console

    from formbot.services.result import ServiceResult


def _field(console: Console, key: str, value: Any) -> None:
    if isinstance(value, list):
        console.print(Text(f"  {key}:", style="fb.key"))
        for item in value:
            console.print(Text(f"    - {item}"))
        return
    console.print(Text(f"  {key}: ", style="fb.key"), Text(str(value)), sep="")


def _render_ok(result: ServiceResult, console: Console) -> None:
    console.print(Text("OK", style="fb.ok"), Text(f"  {result.op}", style="fb.op"), sep="")
    for key, value in result.data.items():
        _field(console, key, value)


def _render_error(result: ServiceResult, console: Console, *, verbose: bool) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(
        Text("ERROR", style="fb.error"),
        Text(f"  {result.op}", style="fb.op"),
        Text(f": {msg}"),
        sep="",
    )
    if err is None:
        return
    if err.problems:
        _field(console, "problems", err.problems)
    if verbose:
        for key, value in err.detail.items():
            _field(console, key, value)


def format_result(
    result: ServiceResult,
    *,
    json_output: bool = False,
    verbose: bool = False,
) -> str:
    """Format a ServiceResult for display.

    Args:
        result: The service result to format.
        json_output: Return JSON instead of human-readable text.
        verbose: Include error detail beyond the problem list.
    """
    if json_output:
        return result.model_dump_json(indent=2)

    console = create_console()
    if result.ok:
        _render_ok(result, console)
    else:
        _render_error(result, console, verbose=verbose)
    return get_output(console).rstrip("\n")
