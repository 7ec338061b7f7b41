# Relay wire protocol constants (kind names, framing, protocol texts)

# Framing
DELIMITER = "|"
TERMINATOR = "\n"
ENCODING = "utf-8"

# Frame field positions: KIND|SENDER|RECIPIENT|CONTENT
F_KIND = 0
F_SENDER = 1
F_RECIPIENT = 2
F_CONTENT = 3
MIN_FIELDS = 3

# Message kinds
T_BROADCAST = "BROADCAST"
T_PRIVATE = "PRIVATE"
T_SYSTEM = "SYSTEM"
T_FILE = "FILE"
T_USER_LIST = "USER_LIST"
T_JOIN = "JOIN"
T_LEAVE = "LEAVE"
T_ERROR = "ERROR"
T_PRIVATE_REQUEST = "PRIVATE_REQUEST"
T_PRIVATE_ACCEPT = "PRIVATE_ACCEPT"

KINDS = (
    T_BROADCAST,
    T_PRIVATE,
    T_SYSTEM,
    T_FILE,
    T_USER_LIST,
    T_JOIN,
    T_LEAVE,
    T_ERROR,
    T_PRIVATE_REQUEST,
    T_PRIVATE_ACCEPT,
)

# Kinds that must carry a recipient.
DIRECTED_KINDS = frozenset({T_PRIVATE, T_FILE, T_PRIVATE_REQUEST})

# Unknown kind names decode to this kind.
DEFAULT_KIND = T_BROADCAST

# Identity policy
IDENTITY_MIN_CHARS = 3
IDENTITY_MAX_CHARS = 20

SYSTEM_SENDER = "SERVER"

# Protocol texts
TXT_PROMPT = "Enter your username:"
TXT_INVALID_IDENTITY = "Invalid username. Disconnecting."
TXT_IDENTITY_RULE = (
    f"Username must be {IDENTITY_MIN_CHARS}-{IDENTITY_MAX_CHARS} characters: "
    "letters, digits or underscore."
)
TXT_SERVER_FULL = "Server is full. Try again later."
TXT_DISCONNECTED = "You have been disconnected from the server."
TXT_LISTING_PREFIX = "Online users: "
WELCOME_PREFIX = "Welcome"

# Client commands understood by relayd-chat
CMD_EXIT = "/exit"
CMD_LIST_USERS = "/users"
CMD_PRIVATE = "/private"
