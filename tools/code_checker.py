"""
code_checker.py
===============
Static checks for widget files that need no toolchain.

* ``.ts/.tsx/.js/.jsx`` – every import specifier must resolve to a widget
  file or a pre-installed package.
* ``.json`` – must parse.
* ``.css`` – braces must balance.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from config import WidgetSettings
from tools.base import BaseTool, ToolResult, WidgetError
from tools.widget_args import CheckImportsArgs, invalid_arguments
from utils.json_utils import dumps_result
from utils.widget_types import normalize_widget_path

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")
RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".json", ".css")
# "@/x" is the project alias; widgets keep sources either at the root or under /src.
ALIAS_ROOTS = ("/", "/src/")

_SPEC = r"""['"]([^'"\n]+)['"]"""
IMPORT_PATTERNS = (
    re.compile(r"\bimport\s+(?:type\s+)?[\w$*{}\s,]+?\s+from\s*" + _SPEC),
    re.compile(r"\bimport\s*" + _SPEC),
    re.compile(r"\bexport\s+(?:type\s+)?[\w$*{}\s,]+?\s+from\s*" + _SPEC),
    re.compile(r"\brequire\(\s*" + _SPEC + r"\s*\)"),
    re.compile(r"\bimport\(\s*" + _SPEC + r"\s*\)"),
)


@dataclass(frozen=True)
class CheckFinding:
    file: str
    line: int
    column: int
    message: str
    rule: str
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_ignored_import(specifier: str, ignored: Sequence[str]) -> bool:
    for pattern in ignored:
        if pattern.endswith("/"):
            if specifier.startswith(pattern):
                return True
        elif specifier == pattern or specifier.startswith(pattern + "/"):
            return True
    return False


def _position(content: str, offset: int) -> Tuple[int, int]:
    line = content.count("\n", 0, offset) + 1
    column = offset - (content.rfind("\n", 0, offset) + 1) + 1
    return line, column


def find_imports(content: str) -> List[Tuple[str, int, int]]:
    """Return ``(specifier, line, column)`` for each import, in file order."""
    seen: Dict[int, str] = {}
    for pattern in IMPORT_PATTERNS:
        for m in pattern.finditer(content):
            seen.setdefault(m.start(1), m.group(1))
    return [(spec, *_position(content, offset)) for offset, spec in sorted(seen.items())]


def _candidates(base: str) -> Iterator[str]:
    yield base
    for ext in RESOLVE_EXTENSIONS:
        yield base + ext
    for ext in RESOLVE_EXTENSIONS:
        yield posixpath.join(base, "index" + ext)


def resolve_local_import(importer: str, specifier: str, files: Iterable[str]) -> Optional[str]:
    """Find the widget file a relative or ``@/`` specifier points at."""
    known = set(files)
    if specifier.startswith("@/"):
        bases = [posixpath.normpath(root + specifier[2:]) for root in ALIAS_ROOTS]
    else:
        bases = [posixpath.normpath(posixpath.join(posixpath.dirname(importer), specifier))]
    for base in bases:
        for candidate in _candidates(base):
            if candidate in known:
                return candidate
    return None


class ImportChecker:
    def __init__(self, ignored_imports: Sequence[str]):
        self.ignored_imports = tuple(ignored_imports)

    def check_script(self, path: str, content: str, files: Dict[str, str]) -> List[CheckFinding]:
        findings = []
        for specifier, line, column in find_imports(content):
            if is_ignored_import(specifier, self.ignored_imports):
                continue
            if specifier.startswith((".", "/", "@/")):
                if resolve_local_import(path, specifier, files) is None:
                    findings.append(
                        CheckFinding(path, line, column, f"Cannot resolve import '{specifier}'", "unresolved-import")
                    )
            else:
                findings.append(
                    CheckFinding(
                        path,
                        line,
                        column,
                        f"Package '{specifier}' is not pre-installed",
                        "unknown-package",
                        "warning",
                    )
                )
        return findings

    @staticmethod
    def check_json(path: str, content: str) -> List[CheckFinding]:
        try:
            json.loads(content)
        except json.JSONDecodeError as exc:
            return [CheckFinding(path, exc.lineno, exc.colno, f"Invalid JSON: {exc.msg}", "json")]
        return []

    @staticmethod
    def check_css(path: str, content: str) -> List[CheckFinding]:
        balance = content.count("{") - content.count("}")
        if balance == 0:
            return []
        kind = "missing closing" if balance > 0 else "extra closing"
        return [
            CheckFinding(path, len(content.split("\n")), 0, f"Unbalanced braces: {kind} braces", "css-braces")
        ]

    def check(self, files: Dict[str, str], paths: Optional[Iterable[str]] = None) -> List[CheckFinding]:
        findings: List[CheckFinding] = []
        for path in paths if paths is not None else list(files):
            content = files[path]
            if path.endswith(SCRIPT_EXTENSIONS):
                findings.extend(self.check_script(path, content, files))
            elif path.endswith(".json"):
                findings.extend(self.check_json(path, content))
            elif path.endswith(".css"):
                findings.extend(self.check_css(path, content))
        return findings


def build_report(findings: List[CheckFinding]) -> Dict[str, Any]:
    errors = [f for f in findings if f.severity == "error"]
    warnings = len(findings) - len(errors)
    if not errors:
        report = "All files passed code checking successfully."
        if warnings:
            report += f" ({warnings} warning(s))"
        return {"success": True, "report": report, "errors": [f.to_dict() for f in findings]}
    return {
        "success": False,
        "report": f"Found {len(errors)} error(s). Please fix these errors and try again.",
        "errors": [f.to_dict() for f in findings],
        "errorSummary": "\n".join(f"{f.file}:{f.line}:{f.column} - {f.message}" for f in findings),
    }


class CodeCheckerTool(BaseTool):
    def __init__(self, store, settings: Optional[WidgetSettings] = None):
        super().__init__(input_schema=None)
        self.store = store
        self.settings = settings or WidgetSettings()

    @property
    def name(self) -> str:
        return "code_checker"

    @property
    def description(self) -> str:
        return (
            "Check a widget after editing it: reports imports that resolve to no widget file, "
            "packages that are not pre-installed, invalid JSON and unbalanced CSS braces."
        )

    def to_params(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "widgetId": {"type": "string", "description": "The unique identifier for the widget"},
                        "filePaths": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Files to check (default: every file in the widget)",
                        },
                        "ignoredImports": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Extra import patterns to ignore; a trailing / matches by prefix",
                        },
                    },
                    "required": ["widgetId"],
                },
            },
        }

    async def check_imports(self, **arguments) -> Dict[str, Any]:
        try:
            args = CheckImportsArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc).to_dict()

        settings = self.settings.with_ignored_imports(args.ignored_imports)
        try:
            files = await self.store.fetch_files(args.widget_id)
            paths = None
            if args.file_paths is not None:
                paths = [normalize_widget_path(p) for p in args.file_paths]
                missing = [p for p in paths if p not in files]
                if missing:
                    logger.warning(f"Skipping unknown file(s) {missing} in widget {args.widget_id}")
                paths = [p for p in paths if p in files]
            findings = ImportChecker(settings.ignored_imports).check(files, paths)
        except Exception as exc:
            logger.error(f"Code check failed for widget {args.widget_id}", exc_info=True)
            message = exc.message if isinstance(exc, WidgetError) else str(exc)
            return {
                "success": False,
                "report": f"Code checking failed: {message}",
                "errors": [CheckFinding("system", 0, 0, f"Code checking system error: {message}", "system").to_dict()],
                "errorType": type(exc).__name__,
            }

        result = build_report(findings)
        logger.debug(f"Code check for widget {args.widget_id}: {result['report']}")
        return result

    async def __call__(self, **kwargs) -> ToolResult:
        kwargs.pop("command", None)
        result = await self.check_imports(**kwargs)
        return ToolResult(
            output=dumps_result(result),
            error=None if result.get("success") else result.get("report") or result.get("message"),
            tool_name=self.name,
            command="check_imports",
        )
