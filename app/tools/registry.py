"""Tool registry and the dispatch boundary.

Every tool is registered once with a name, a pydantic argument model and an
async handler ``(args, ctx) -> ToolResult``. Mismatches are rejected when the
registry is built, never when a turn runs.

``dispatch`` is the only way tools are executed. It has two channels: blocks
are pushed to ``on_blocks`` as soon as they exist, and a ``ToolDispatchResult``
is always returned. It never raises; a failing tool becomes a single
``Tool failed`` status block.
"""

import inspect
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from app.core.blocks import CoachModel, tool_error_block
from app.core.sanitize import sanitize_error
from app.tools.context import ToolContext, ToolResult

logger = logging.getLogger("uvicorn.error")

TOOL_NAME_RE = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
INVALID_OUTPUT_MESSAGE = "The tool built a result that could not be displayed."

ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolResult]]
OnBlocks = Callable[[str, list[CoachModel]], None]


class ToolRegistrationError(ValueError):
    pass


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: ToolHandler

    def catalog_entry(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            if isinstance(prop, dict):
                prop.pop("title", None)
        schema.setdefault("properties", {})
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
            },
        }


@dataclass
class ToolDispatchResult:
    tool_name: str
    summary: str
    blocks: list[CoachModel]
    output_for_model: dict[str, Any] = field(default_factory=dict)
    # Blocks were already delivered through on_blocks; renderers must not repeat them.
    handled: bool = True
    streamed: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def for_model(self) -> dict[str, Any]:
        if self.error is not None:
            return {"status": "error", "tool": self.tool_name, "error": self.error}
        return dict(self.output_for_model)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(
        self,
        name: str,
        args_model: type[BaseModel],
        handler: ToolHandler,
        description: str,
    ) -> ToolSpec:
        if not TOOL_NAME_RE.match(name):
            raise ToolRegistrationError(f"Invalid tool name: {name!r}")
        if name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {name}")
        if not (isinstance(args_model, type) and issubclass(args_model, BaseModel)):
            raise ToolRegistrationError(f"{name}: args_model must be a pydantic model")
        if args_model.model_config.get("extra") != "forbid":
            raise ToolRegistrationError(f"{name}: args_model must forbid extra fields")
        if not inspect.iscoroutinefunction(handler):
            raise ToolRegistrationError(f"{name}: handler must be an async function")
        params = list(inspect.signature(handler).parameters.values())
        if len(params) != 2:
            raise ToolRegistrationError(f"{name}: handler must accept (args, ctx)")
        annotation = params[0].annotation
        if isinstance(annotation, type) and annotation is not args_model:
            raise ToolRegistrationError(
                f"{name}: handler expects {annotation.__name__}, registered with {args_model.__name__}"
            )
        if not description.strip():
            raise ToolRegistrationError(f"{name}: description is required")

        spec = ToolSpec(name=name, description=description.strip(), args_model=args_model, handler=handler)
        self._tools[name] = spec
        return spec

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def catalog(self) -> list[dict[str, Any]]:
        return [spec.catalog_entry() for spec in self._tools.values()]

    async def dispatch(
        self,
        tool_name: str,
        raw_args: Any,
        ctx: ToolContext,
        on_blocks: Optional[OnBlocks] = None,
    ) -> ToolDispatchResult:
        streamed = False

        def sink(blocks: list[CoachModel]) -> None:
            nonlocal streamed
            streamed = True
            if on_blocks is not None:
                on_blocks(tool_name, blocks)

        def failure(message: str) -> ToolDispatchResult:
            blocks = [tool_error_block(message)]
            if on_blocks is not None:
                on_blocks(tool_name, blocks)
            return ToolDispatchResult(
                tool_name=tool_name,
                summary=message,
                blocks=blocks,
                streamed=streamed,
                error=message,
            )

        spec = self._tools.get(tool_name)
        if spec is None:
            logger.warning("coach tool unsupported tool=%s", tool_name)
            return failure(f"Unsupported tool: {tool_name}")

        try:
            args = spec.args_model.model_validate(raw_args if raw_args is not None else {})
        except ValidationError as exc:
            first = exc.errors()[0] if exc.errors() else {}
            detail = str(first.get("msg", "invalid arguments"))
            logger.info("coach tool invalid args tool=%s detail=%s", tool_name, detail)
            return failure(f"Invalid arguments for {tool_name}: {detail}")

        try:
            result = await spec.handler(args, replace(ctx, sink=sink))
        except ValidationError as exc:
            # A block broke its own schema; the pydantic text stays in the log.
            logger.warning("coach tool built invalid blocks tool=%s user_id=%s error=%s", tool_name, ctx.user_id, exc)
            return failure(INVALID_OUTPUT_MESSAGE)
        except Exception as exc:
            logger.warning("coach tool failed tool=%s user_id=%s error=%r", tool_name, ctx.user_id, exc)
            return failure(sanitize_error(str(exc)))

        if not streamed and on_blocks is not None:
            on_blocks(tool_name, list(result.blocks))
        return ToolDispatchResult(
            tool_name=tool_name,
            summary=result.summary,
            blocks=list(result.blocks),
            output_for_model=dict(result.output_for_model),
            streamed=streamed,
        )
