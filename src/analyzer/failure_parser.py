"""Failure analysis models and parsing utilities for failed conformance checks."""
import json
import re
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import httpx
from pydantic import BaseModel, Field


class APIResponse(BaseModel):
    """Captured HTTP response data."""
    status_code: int
    body: Any = Field(default=None, description="Response body (parsed JSON or raw text)")
    headers: Dict[str, str] = Field(default_factory=dict)
    url: str = Field(default="", description="Request URL")

    @classmethod
    def from_response(cls, response: httpx.Response) -> "APIResponse":
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return cls(
            status_code=response.status_code,
            body=body,
            headers=dict(response.headers),
            url=str(response.url),
        )


class CheckFailure(BaseModel):
    """Failed check metadata."""
    test_file: str = Field(description="Path to test file")
    test_name: str = Field(description="Check function name")
    error_type: str = Field(description="Exception type (e.g., AssertionError)")
    error_message: str = Field(description="Error message")
    actual: Optional[Any] = Field(default=None, description="Actual value from assertion")
    expected: Optional[Any] = Field(default=None, description="Expected value from assertion")
    line_number: Optional[int] = Field(default=None, description="Line number where failure occurred")
    traceback: Optional[str] = Field(default=None, description="Full traceback")


class FailureContext(BaseModel):
    """A failed check together with the HTTP exchange that led to it."""
    check_failure: CheckFailure
    api_response: Optional[APIResponse] = Field(default=None)
    request_method: Optional[str] = Field(default=None, description="HTTP method (GET, POST, etc.)")
    request_url: Optional[str] = Field(default=None)
    request_payload: Optional[Any] = Field(default=None, description="Request body/payload")
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return self.model_dump()

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, default=str)


def extract_assertion_details(error_message: str) -> Tuple[Optional[Any], Optional[Any]]:
    """Extract actual and expected values from an assertion error message."""
    actual = None
    expected = None

    # assert x == y
    match = re.search(r'assert\s+(.+?)\s*==\s*(.+)', error_message)
    if match:
        actual = match.group(1).strip()
        expected = match.group(2).strip()

    # assert 'key' in container
    match = re.search(r"assert\s+['\"](.+?)['\"]\s+in\s+", error_message)
    if match:
        expected = match.group(1)

    # assert len(x) == n
    match = re.search(r'assert\s+len\([^)]+\)\s*==\s*(\d+)', error_message)
    if match:
        expected = int(match.group(1))

    # assert x["key"] == y
    match = re.search(r"assert\s+\w+\[['\"](.+?)['\"]\]\s*==\s*(.+)", error_message)
    if match:
        expected = match.group(2).strip().strip('"').strip("'")

    return actual, expected


def parse_assertion_error(exc_info) -> Tuple[str, Optional[Any], Optional[Any]]:
    """Parse an (type, value, tb) triple into message, actual and expected."""
    error_message = str(exc_info[1]) if exc_info[1] else ""

    actual, expected = extract_assertion_details(error_message)

    # Fall back to the traceback lines
    if actual is None and expected is None:
        for line in traceback.format_exception(*exc_info):
            actual, expected = extract_assertion_details(line)
            if actual is not None or expected is not None:
                break

    return error_message, actual, expected


def build_failure_context(
    test_file: str,
    test_name: str,
    exc_info,
    last_request: Optional[Dict[str, Any]] = None,
    last_response: Optional[httpx.Response] = None,
) -> FailureContext:
    """Assemble the failure context of a check from its exception and last exchange."""
    error_message, actual, expected = parse_assertion_error(exc_info)
    error_type = exc_info[0].__name__ if exc_info[0] else "Exception"
    tb_lines = traceback.format_exception(*exc_info)

    line_number = None
    for line in tb_lines:
        match = re.search(r'File "([^"]+)", line (\d+)', line)
        if match and test_file in match.group(1):
            line_number = int(match.group(2))

    check_failure = CheckFailure(
        test_file=test_file,
        test_name=test_name,
        error_type=error_type,
        error_message=error_message,
        actual=actual,
        expected=expected,
        line_number=line_number,
        traceback="".join(tb_lines),
    )

    last_request = last_request or {}
    return FailureContext(
        check_failure=check_failure,
        api_response=APIResponse.from_response(last_response) if last_response is not None else None,
        request_method=last_request.get("method"),
        request_url=last_request.get("url"),
        request_payload=last_request.get("payload"),
    )


def report_filename(test_name: str, node_id: str) -> str:
    """File name of a failure report, safe for any node id."""
    safe_test_name = re.sub(r'[^\w\-_]', '_', test_name)
    safe_node_id = re.sub(r'[^\w\-_.]', '_', node_id.replace('::', '_').replace('/', '_'))
    return f"{safe_test_name}_{safe_node_id}.json"


def write_failure_report(context: FailureContext, output_dir: Path, node_id: str) -> Path:
    """Write a failure context as JSON and return its path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / report_filename(context.check_failure.test_name, node_id)
    output_file.write_text(context.to_json(), encoding="utf-8")
    return output_file


def load_failure_report(path: Path) -> FailureContext:
    """Read a failure report written by write_failure_report."""
    return FailureContext.model_validate_json(Path(path).read_text(encoding="utf-8"))


def collect_failure_reports(output_dir: Path) -> List[Path]:
    """All failure report files in output_dir, sorted."""
    output_dir = Path(output_dir)
    if not output_dir.exists():
        return []
    return sorted(output_dir.glob("*.json"))
