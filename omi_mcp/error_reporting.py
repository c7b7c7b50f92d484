"""
Error reporting and logging utilities for the Omi MCP integration.

Tool failures are converted to text here: the tool boundary gets a short
``Error: <message>`` string, the log gets the details, and the CLI gets a
friendlier message with suggestions.
"""

import os
import sys
import json
import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional
from collections import deque
from contextlib import contextmanager

import requests

# Error type mappings for user-friendly messages
# Most recent failures kept in memory for the summary
MAX_SESSION_ERRORS = 50

ERROR_TYPE_MESSAGES = {
    'ConfigError': "Configuration issue",
    'YAMLSyntaxError': "Configuration file syntax error",
    'ConfigValidationError': "Configuration validation failed",
    'UnauthorizedError': "Omi.me rejected the API token",
    'ForbiddenError': "Omi.me denied access",
    'RateLimitedError': "Omi.me rate limit reached",
    'ServerError': "Omi.me server error",
    'UnknownAPIError': "Unexpected Omi.me API response",
    'ToolValidationError': "Invalid tool arguments",
    'ConnectionError': "Network connection failed",
    'Timeout': "Request to Omi.me timed out",
    'ReadTimeout': "Request to Omi.me timed out",
    'ConnectTimeout': "Could not connect to Omi.me in time",
}

class ErrorReporter:
    """
    Centralized failure reporting for tool calls and CLI commands.

    Keeps per-type counters for the session and, when enabled, appends one
    JSON line per failure to ``errors.log`` in the log directory.
    """

    def __init__(self,
                 log_dir: Optional[str] = None,
                 enable_file_logging: bool = False,
                 verbose: bool = False):
        """
        Initialize error reporter.

        Args:
            log_dir: Directory for the error log (default: ~/.omi-mcp/logs)
            enable_file_logging: Whether to append failures to errors.log
            verbose: Include tracebacks in the log output
        """
        self.verbose = verbose
        self.enable_file_logging = enable_file_logging

        if log_dir is None:
            log_dir = os.path.expanduser("~/.omi-mcp/logs")
        self.log_dir = Path(log_dir)
        self.error_log_file = self.log_dir / "errors.log"

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger('omi_mcp.error_reporter')

        self.error_counts = {}
        self.session_errors = deque(maxlen=MAX_SESSION_ERRORS)

    def report_error(self,
                     error: Exception,
                     tool_name: Optional[str] = None,
                     arguments: Optional[Dict[str, Any]] = None) -> str:
        """
        Record a failure and return the text shown at the tool boundary.

        Args:
            error: The exception raised while serving the call
            tool_name: Name of the tool being invoked, if any
            arguments: Arguments of the tool call

        Returns:
            Message of the form ``Error: <message>``
        """
        details = self._extract_error_details(error, tool_name, arguments)

        self.logger.error(f"{details['error_type']} in tool '{tool_name}': {details['error_message']}")
        if self.verbose:
            self.logger.debug(f"Error details: {json.dumps(details, indent=2, default=str)}")

        if self.enable_file_logging:
            self._append_to_error_log(details)

        self._track_error(details)
        return f"Error: {details['error_message']}"

    def _extract_error_details(self,
                               error: Exception,
                               tool_name: Optional[str],
                               arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Extract loggable details from an error."""
        details = {
            'timestamp': datetime.now().isoformat(),
            'error_type': type(error).__name__,
            'error_message': str(error) or type(error).__name__,
            'tool_name': tool_name,
            'arguments': arguments or {},
            'status_code': getattr(error, 'status_code', None),
            'traceback_lines': traceback.format_tb(error.__traceback__),
        }

        if isinstance(error, requests.RequestException) and error.request is not None:
            details['url'] = getattr(error.request, 'url', None)
            details['method'] = getattr(error.request, 'method', None)

        if error.__cause__:
            details['root_cause'] = str(error.__cause__)

        return details

    def _append_to_error_log(self, error_details: Dict[str, Any]) -> None:
        """Append error details to the error log file."""
        try:
            with open(self.error_log_file, 'a', encoding='utf-8') as f:
                json.dump(error_details, f, default=str, ensure_ascii=False)
                f.write('\n')
        except OSError as e:
            self.logger.warning(f"Failed to write to error log: {e}")

    def _track_error(self, error_details: Dict[str, Any]) -> None:
        error_type = error_details['error_type']
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1
        self.session_errors.append(error_details)

    def get_suggestions(self, error: Exception) -> List[str]:
        """Get suggestions for the user based on the failure kind."""
        error_type = type(error).__name__
        suggestions = []

        if error_type == 'UnauthorizedError':
            suggestions.append("Check that OMI_API_TOKEN holds a valid Omi.me API token")
        elif error_type == 'ForbiddenError':
            suggestions.append("Make sure the API token has access to this resource")
        elif error_type == 'RateLimitedError':
            retry_after = getattr(error, 'retry_after', None)
            suggestions.append(f"Wait {retry_after} seconds before calling the API again")
        elif error_type in ('ServerError', 'UnknownAPIError'):
            suggestions.append("Try again later; the Omi.me API may be having issues")
        elif 'Config' in error_type or error_type == 'YAMLSyntaxError':
            suggestions.extend([
                "Set OMI_API_TOKEN in the environment or in a .env file",
                "Check your configuration file syntax and structure",
            ])
        elif isinstance(error, requests.RequestException):
            suggestions.extend([
                "Check your internet connection",
                "Verify OMI_API_URL points to a reachable Omi.me API",
            ])

        if error_type == 'ToolValidationError':
            suggestions.append("Pass the missing argument with --arguments")

        suggestions.append("Run with '--verbose' for more detailed information")
        return suggestions

    def format_for_cli(self, error: Exception, user_action: str) -> str:
        """Build a user-friendly message for command-line output."""
        friendly_type = ERROR_TYPE_MESSAGES.get(type(error).__name__, "An error occurred")
        message = f"❌ {friendly_type} while {user_action}\n\n"
        message += f"Details: {error}\n\n"

        message += "💡 Suggestions:\n"
        for suggestion in self.get_suggestions(error):
            message += f"  • {suggestion}\n"

        if self.enable_file_logging:
            message += f"\n📝 Error log: {self.error_log_file}\n"

        return message.strip()

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of errors encountered in this session."""
        return {
            'total_errors': sum(self.error_counts.values()),
            'error_types': dict(self.error_counts),
            'most_common_error': max(self.error_counts, key=self.error_counts.get) if self.error_counts else None,
            'error_log': str(self.error_log_file),
        }

    def clear_session_errors(self) -> None:
        self.session_errors.clear()
        self.error_counts.clear()

@contextmanager
def error_context(reporter: ErrorReporter, user_action: str):
    """
    Print a friendly message to stderr and exit with status 1 on failure.

    Example:
        with error_context(reporter, "loading configuration"):
            config = load_config()
    """
    try:
        yield
    except Exception as e:
        reporter.logger.debug(f"Failure while {user_action}", exc_info=True)
        print(reporter.format_for_cli(e, user_action), file=sys.stderr)
        sys.exit(1)

