"""Constant values for the FHEMWEB client"""

# Query parameter asking FHEMWEB for the bare command result instead of a page
XHR_PARAM = "XHR"
XHR_VALUE = "1"

CMD_PARAM = "cmd"
CSRF_PARAM = "fwcsrf"
CSRF_HEADER = "X-FHEM-csrfToken"

DEFAULT_TIMEOUT = 10

# Milliseconds, keyed by ErrorKind value
DEFAULT_RETRY_INTERVALS = {
    "response-error": 500,
    "response-aborted": 500,
    "connect-timeout": 1000,
    "connection-refused": 10000,
    "network-unreachable": 10000,
}

CHUNK_SIZE = 8192
LOG_PREVIEW_LENGTH = 50

DEVICE_HANDLE_PLACEHOLDER = "<device hash>"
