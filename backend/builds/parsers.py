"""Compiler output parsers.

Each parser turns raw toolchain output into BuildError records. Errors get
severity 8 and warnings severity 4; Python syntax problems get 9.
"""

import re
from pathlib import PurePath

from builds.types import BuildError, BuildErrorType

ERROR_SEVERITY = 8
WARNING_SEVERITY = 4
PYTHON_SYNTAX_SEVERITY = 9

# UserService.cs(12,5): error CS1002: ; expected
_CSHARP_PATTERN = re.compile(r"(.+\.cs)\((\d+),\d+\):\s+(error|warning)\s+(CS\d+):\s+(.+)")
# src/app.ts(3,7): error TS2322: Type 'string' is not assignable to type 'number'.
_TYPESCRIPT_PATTERN = re.compile(r"(.+\.ts)\((\d+),\d+\):\s+(error|warning)\s+(TS\d+):\s+(.+)")
# UserService.java:14: error: cannot find symbol
_JAVA_PATTERN = re.compile(r"(.+\.java):(\d+):\s+(error|warning):\s+(.+)")
# File "handlers.py", line 3
_PYTHON_LOCATION_PATTERN = re.compile(r'File "([^"]+)", line (\d+)')


def _severity(kind: str) -> int:
    return ERROR_SEVERITY if kind == "error" else WARNING_SEVERITY


def _file_name(path: str) -> str:
    return PurePath(path.strip().replace("\\", "/")).name


def parse_csharp_errors(output: str) -> list[BuildError]:
    """Parse ``dotnet build`` diagnostics.

    MSBuild repeats each diagnostic in its summary, so duplicates are dropped.
    """
    errors: list[BuildError] = []
    seen: set[tuple[str, int, str, str]] = set()
    for line in output.splitlines():
        match = _CSHARP_PATTERN.search(line)
        if not match:
            continue
        path, line_number, kind, code, message = match.groups()
        message = re.sub(r"\s*\[[^\]]*\.csproj\]\s*$", "", message).strip()
        key = (_file_name(path), int(line_number), code, message)
        if key in seen:
            continue
        seen.add(key)
        errors.append(
            BuildError(
                error_type=BuildErrorType.COMPILE_ERROR,
                error_message=message,
                details=code,
                file_name=key[0],
                line_number=key[1],
                severity=_severity(kind),
            )
        )
    return errors


def parse_typescript_errors(output: str) -> list[BuildError]:
    errors: list[BuildError] = []
    for line in output.splitlines():
        match = _TYPESCRIPT_PATTERN.search(line)
        if not match:
            continue
        path, line_number, kind, code, message = match.groups()
        errors.append(
            BuildError(
                error_type=BuildErrorType.COMPILE_ERROR,
                error_message=message.strip(),
                details=code,
                file_name=_file_name(path),
                line_number=int(line_number),
                severity=_severity(kind),
            )
        )
    return errors


def parse_java_errors(output: str) -> list[BuildError]:
    errors: list[BuildError] = []
    for line in output.splitlines():
        match = _JAVA_PATTERN.search(line)
        if not match:
            continue
        path, line_number, kind, message = match.groups()
        errors.append(
            BuildError(
                error_type=BuildErrorType.COMPILE_ERROR,
                error_message=message.strip(),
                file_name=_file_name(path),
                line_number=int(line_number),
                severity=_severity(kind),
            )
        )
    return errors


def parse_python_errors(output: str, file_name: str) -> list[BuildError]:
    """Parse ``py_compile`` output for one file.

    Every line mentioning SyntaxError or IndentationError is one error. The
    closest preceding ``File "...", line N`` gives the line number.
    """
    errors: list[BuildError] = []
    line_number: int | None = None
    for line in output.splitlines():
        location = _PYTHON_LOCATION_PATTERN.search(line)
        if location:
            line_number = int(location.group(2))
        if "SyntaxError" in line or "IndentationError" in line:
            errors.append(
                BuildError(
                    error_type=BuildErrorType.SYNTAX_ERROR,
                    error_message=line.strip(),
                    file_name=file_name,
                    line_number=line_number,
                    severity=PYTHON_SYNTAX_SEVERITY,
                )
            )
    return errors
