# linechat protocol constants (wire texts and markers)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 11000

# Wire encoding. Lines are newline-terminated UTF-16 text; a BOM may lead the
# stream in either direction.
DEFAULT_ENCODING = "utf-16-le"
LINE_TERMINATOR = "\n"
BOM = "\ufeff"

# Handshake replies
NAME_TAKEN = "Имя занято"
NAME_ACCEPTED = "Имя принято"
ACTIVE_USERS_PREFIX = "Активные пользователи: "
USER_LIST_SEPARATOR = ", "

# Announcements (sent without a timestamp)
JOINED_FMT = "{user} вошел в чат"
LEFT_FMT = "{user} покинул чат"

# Routing
PRIVATE_PREFIX = "private|"
PRIVATE_FIELD_SEP = "|"
MULTI_PRIVATE_MARKER = "->"
MULTI_PRIVATE_BODY_SEP = ":"
MULTI_PRIVATE_TARGET_SEP = ","

CHAT_FMT = "{user} ({ts}): {body}"
TIMESTAMP_FMT = "%H:%M"

USER_NOT_FOUND_FMT = "Пользователь {user} не найден."

# Client-side console texts
CONNECTION_LOST = "Соединение потеряно."
