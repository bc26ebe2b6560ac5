#!/usr/bin/env python3
"""
JSON-RPC 2.0 Server for ValidationSession

Drives a field-validation session from any language that can spawn a process
and talk over stdin/stdout. The caller sends field values with each request;
whatever the session showed or cleared is returned under "renders".

One JSON object per line in each direction. Error codes follow JSON-RPC 2.0;
library errors use -32001 and carry the exception class name in error.data.type.

Usage:
    python -m field_validation.jsonrpc_server [--debug]

Example request (stdin):
    {"jsonrpc":"2.0","id":1,"method":"add_field","params":{"name":"age","rules":"required|between:18:65"}}

Example response (stdout):
    {"jsonrpc":"2.0","id":1,"result":{"field":"age","valid":false,"message":"Field is required. ...","renders":[]}}
"""

import sys
import json
import signal
import logging
import argparse
from typing import Any, Dict, Optional

from field_validation import ValidationSession
from field_validation.collaborators import DictValueSource, LifecycleHook, RecordingRenderer
from field_validation.errors import FieldValidationError

logger = logging.getLogger(__name__)


class MethodNotFound(LookupError):
    pass


class ValidationJsonRpcServer:
    """JSON-RPC 2.0 server wrapping the ValidationSession API."""

    ERROR_PARSE = -32700
    ERROR_INVALID_REQUEST = -32600
    ERROR_METHOD_NOT_FOUND = -32601
    ERROR_INVALID_PARAMS = -32602
    ERROR_INTERNAL = -32000
    ERROR_VALIDATION = -32001  # any FieldValidationError

    # Requests answer synchronously, so every field evaluates without delay
    DEBOUNCE_MS = 0

    def __init__(self, debug: bool = False, session: Optional[ValidationSession] = None):
        """
        Args:
            debug: Echo traffic to stderr
            session: ValidationSession to drive (default: one over an empty
                DictValueSource and a RecordingRenderer)
        """
        self.values = DictValueSource()
        self.renderer = RecordingRenderer()
        self.lifecycle = LifecycleHook()
        self.session = session or ValidationSession(
            value_source=self.values, renderer=self.renderer, lifecycle=self.lifecycle
        )
        self.session.set_global_options({"debounce": self.DEBOUNCE_MS})
        self.running = False
        self.debug = debug

        self.methods = {
            'add_field': self._handle_add_field,
            'set_global_options': self._handle_set_global_options,
            'validate_field': self._handle_validate_field,
            'check_form_validity': self._handle_check_form_validity,
            'remove_field': self._handle_remove_field,
            'clear_invalid_entries_ahead': self._handle_clear_invalid_entries_ahead,
            'get_summary': self._handle_get_summary,
            'page_transition': self._handle_page_transition,
        }

    def _log(self, message: str):
        """Trace to stderr; stdout is reserved for responses."""
        if self.debug:
            sys.stderr.write(f"[DEBUG] {message}\n")
            sys.stderr.flush()

    def start_server(self):
        """Answer stdin lines until EOF or stop_server(), then close the session."""
        self.running = True
        self._log("ValidationSession JSON-RPC server started")

        while self.running:
            try:
                line = sys.stdin.readline()

                if not line:
                    self._log("EOF received, shutting down")
                    break

                if not line.strip():
                    continue

                self._log(f"Received: {line.strip()}")
                response = self.handle_request(line)
                self._send_response(response)

            except KeyboardInterrupt:
                self._log("KeyboardInterrupt received, shutting down")
                break

        self.session.close()
        self._log("Server stopped")

    def stop_server(self):
        """Let the loop finish after the request in hand."""
        self.running = False
        self._log("Stop signal received")

    def handle_request(self, request_json: str) -> Dict[str, Any]:
        """
        Answer one request line.

        Never raises: malformed input and session errors both come back as
        error responses, so one bad line cannot end the loop.
        """
        request_id = None

        try:
            try:
                request = json.loads(request_json)
            except json.JSONDecodeError as e:
                return self._error_response(None, self.ERROR_PARSE,
                                           f"Parse error: {e}")

            if not isinstance(request, dict):
                return self._error_response(None, self.ERROR_INVALID_REQUEST,
                                           "Request must be a JSON object")

            if request.get("jsonrpc") != "2.0":
                return self._error_response(None, self.ERROR_INVALID_REQUEST,
                                           f"Invalid JSON-RPC version: {request.get('jsonrpc')}")

            request_id = request.get("id")
            method = request.get("method")
            params = request.get("params", {})

            if not method:
                return self._error_response(request_id, self.ERROR_INVALID_REQUEST,
                                           "Missing 'method' field")

            if not isinstance(params, dict):
                return self._error_response(request_id, self.ERROR_INVALID_PARAMS,
                                           f"Params must be an object, got {type(params).__name__}")

            self._log(f"Dispatching method: {method}")
            result = self._dispatch(method, params)

            return self._success_response(request_id, result)

        except MethodNotFound as e:
            return self._error_response(request_id, self.ERROR_METHOD_NOT_FOUND, str(e))

        except FieldValidationError as e:
            self._log(f"Validation error: {e}")
            return self._error_response(request_id, self.ERROR_VALIDATION, str(e),
                                       data={"type": type(e).__name__})

        except ValueError as e:
            return self._error_response(request_id, self.ERROR_INVALID_PARAMS, str(e))

        except Exception as e:
            self._log(f"Error processing request: {e}")
            logger.exception(f"Unexpected error handling request {request_id}")
            return self._error_response(request_id, self.ERROR_INTERNAL,
                                       f"Internal error: {e}")

    def _dispatch(self, method: str, params: Dict[str, Any]) -> Any:
        if method not in self.methods:
            raise MethodNotFound(f"Method not found: {method}")

        handler = self.methods[method]
        return handler(params)

    def _handle_add_field(self, params: Dict[str, Any]) -> Any:
        """Handle 'add_field' method. Params are the field attributes plus an optional 'value'."""
        attrs = {k: v for k, v in params.items() if k != 'value'}
        field_name = attrs.get('name') or attrs.get('elmName')
        if field_name and 'value' in params:
            self.values.set_value(field_name, params['value'])

        attrs['debounce'] = self.DEBOUNCE_MS
        attrs.pop('typingLimit', None)
        record = self.session.add_field(attrs)
        return {
            "field": record.field_name,
            "valid": record.is_valid,
            "message": record.current_message,
            "renders": self.renderer.drain(),
        }

    def _handle_set_global_options(self, params: Dict[str, Any]) -> Any:
        """Handle 'set_global_options' method."""
        options = dict(params.get('options', params))
        options['debounce'] = self.DEBOUNCE_MS
        options.pop('typingLimit', None)
        self.session.set_global_options(options)
        return {"status": "ok"}

    def _handle_validate_field(self, params: Dict[str, Any]) -> Any:
        """Handle 'validate_field' method."""
        field_name = params.get('name')
        if not field_name:
            raise ValueError("Missing required parameter: name")
        if 'value' not in params:
            raise ValueError("Missing required parameter: value")

        value = params['value']
        self.values.set_value(field_name, value)
        if 'disabled' in params:
            self.values.set_disabled(field_name, bool(params['disabled']))

        state = self.session.validate_field(field_name, value, params.get('event', 'change'))
        record = self.session.get_field(field_name)
        return {
            "field": field_name,
            "state": state.value,
            "valid": record.is_valid,
            "message": record.current_message,
            "renders": self.renderer.drain(),
        }

    def _handle_check_form_validity(self, params: Dict[str, Any]) -> Any:
        """Handle 'check_form_validity' method."""
        form_name = params.get('form')
        valid = self.session.check_form_validity(form_name)
        return {
            "valid": valid,
            "summary": self._summary(form_name),
            "renders": self.renderer.drain(),
        }

    def _handle_remove_field(self, params: Dict[str, Any]) -> Any:
        """Handle 'remove_field' method. Accepts 'name' or a list under 'names'."""
        field_names = params.get('names') or params.get('name')
        if not field_names:
            raise ValueError("Missing required parameter: name")

        self.session.remove_field(field_names)
        return {"status": "ok", "renders": self.renderer.drain()}

    def _handle_clear_invalid_entries_ahead(self, params: Dict[str, Any]) -> Any:
        """Handle 'clear_invalid_entries_ahead' method."""
        removed = self.session.clear_invalid_entries_ahead(params.get('form'))
        return {"removed": removed, "renders": self.renderer.drain()}

    def _handle_get_summary(self, params: Dict[str, Any]) -> Any:
        """Handle 'get_summary' method."""
        return {"summary": self._summary(params.get('form'))}

    def _handle_page_transition(self, params: Dict[str, Any]) -> Any:
        """Handle 'page_transition' method: fire the lifecycle hook as a route change would."""
        self.lifecycle.fire()
        return {"reset": not self.session.suppress_auto_reset}

    def _summary(self, form_name: Optional[str]):
        return [entry.to_dict() for entry in self.session.validation_summary(form_name)]

    def _success_response(self, request_id: Any, result: Any) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result
        }

    def _error_response(self, request_id: Any, code: int, message: str,
                       data: Optional[Any] = None) -> Dict[str, Any]:
        error = {
            "code": code,
            "message": message
        }
        if data is not None:
            error["data"] = data

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": error
        }

    def _send_response(self, response: Dict[str, Any]):
        response_json = json.dumps(response)
        self._log(f"Sending: {response_json}")
        sys.stdout.write(response_json + "\n")
        sys.stdout.flush()


def main():
    """Console entry point: serve one session over stdio."""
    parser = argparse.ArgumentParser(
        description="Field validation JSON-RPC 2.0 Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example usage:
  python -m field_validation.jsonrpc_server
  python -m field_validation.jsonrpc_server --debug

Supported methods:
  - add_field
  - set_global_options
  - validate_field
  - check_form_validity
  - remove_field
  - clear_invalid_entries_ahead
  - get_summary
  - page_transition

Each field evaluates as soon as its value arrives; the response lists
the messages shown and cleared as a result.
        """
    )
    parser.add_argument('--debug', action='store_true',
                       help='Enable debug logging to stderr')

    args = parser.parse_args()

    # stdout carries the protocol; library logs go to stderr
    logging.basicConfig(stream=sys.stderr,
                        level=logging.DEBUG if args.debug else logging.WARNING)

    server = ValidationJsonRpcServer(debug=args.debug)

    def signal_handler(sig, frame):
        server.stop_server()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    server.start_server()


if __name__ == "__main__":
    main()
