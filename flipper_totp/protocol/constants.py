"""
Protocol Constants

Literal strings and identifiers fixed by the Flipper Zero CLI and the TOTP
application running on it. Every value here can be overridden from the
``protocol`` and ``device`` sections of config/client.yaml.
"""

# USB identifiers of the Flipper Zero CDC serial port
FLIPPER_VENDOR_ID = 0x0483
FLIPPER_PRODUCT_ID = 0x5740

SERIAL_BAUDRATE = 115200

# CLI framing
CLI_END_OF_COMMAND = ">: "
CLI_COMMAND_NOT_FOUND = "could not find command"
LINE_TERMINATOR = "\r\n"
COMMAND_SUBMIT = "\r"

# TOTP application
TOTP_COMMAND = "totp"
TOTP_ASK_FOR_PIN = "Pleases enter PIN on your flipper device"
TOTP_COMMAND_CANCELLED = "Cancelled by user"
TOTP_ENTER_SECRET = "Enter token secret and confirm with [ENTER]"

# Case-insensitive fragments that mark a failed mutation
MUTATION_ERROR_MARKERS = (
    "invalid",
    "not found",
    "error",
    "unable",
)

# Timing (seconds)
DEVICE_POLL_INTERVAL = 1.0
RETRY_DELAY = 1.0
PROBE_TIMEOUT = 1.0
ECHO_TIMEOUT = 1.0
RESPONSE_TIMEOUT = 5.0

SUPPORTED_ALGORITHMS = ("sha1", "sha256", "sha512", "steam")
SUPPORTED_SECRET_ENCODINGS = ("base32", "base64")
