"""Shared constants for destination modules."""

# =============================================================================
# Destination Labels
# =============================================================================

# Appended to error messages so the session can tell which backend failed
WEBDAV = "WebDAV"
GDRIVE = "Google Drive"
GITHUB = "GitHub"
COMPANION = "Companion"

# =============================================================================
# HTTP Defaults
# =============================================================================

# Per-request timeout; long uploads are chunked so each request stays short
DEFAULT_HTTP_TIMEOUT_SECONDS = 300

USER_AGENT = "pagesave"

# =============================================================================
# Conflict Handling
# =============================================================================

CONFLICT_ACTION_UNIQUIFY = "uniquify"
CONFLICT_ACTION_OVERWRITE = "overwrite"
CONFLICT_ACTION_SKIP = "skip"
CONFLICT_ACTION_PROMPT = "prompt"

# Upper bound on "name (N).ext" candidates tried before giving up
MAX_UNIQUIFY_ATTEMPTS = 1000

PROMPT_MESSAGE = "Filename conflict, please enter a new filename"

# =============================================================================
# Google Drive
# =============================================================================

GDRIVE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GDRIVE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GDRIVE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GDRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
GDRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
GDRIVE_FOLDER_MIMETYPE = "application/vnd.google-apps.folder"

# Resumable upload chunks must be multiples of 256 KiB
GDRIVE_CHUNK_SIZE = 8 * 1024 * 1024

# =============================================================================
# GitHub
# =============================================================================

GITHUB_API_URL = "https://api.github.com"
GITHUB_WEB_URL = "https://github.com"
