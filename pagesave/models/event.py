"""Inbound session event model.

One model covers every message a capture session sends: payload fragments,
complete payloads, and control messages (cancel, status, revoke, end).
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

from pydantic import Field, field_validator

from .base import BaseModel

MIMETYPE_HTML = "text/html"


class SessionEvent(BaseModel):
    """Message received from a capture session."""

    method: str = ""
    task_id: Optional[str] = None
    filename: str = ""

    # Payload transfer
    truncated: bool = False
    finished: bool = False
    content: Optional[str] = None
    data: Optional[bytes] = None
    compress_content: bool = False
    page_data: Optional[dict[str, Any]] = None
    blob_url: Optional[str] = Field(None, alias="blobURL")
    mime_type: str = MIMETYPE_HTML

    # Destination selectors and credentials
    open_editor: bool = False
    save_to_clipboard: bool = False
    save_with_webdav: bool = Field(False, alias="saveWithWebDAV")
    webdav_url: Optional[str] = Field(None, alias="webDAVURL")
    webdav_user: Optional[str] = Field(None, alias="webDAVUser")
    webdav_password: Optional[str] = Field(None, alias="webDAVPassword")
    save_to_gdrive: bool = Field(False, alias="saveToGDrive")
    force_web_auth_flow: bool = False
    save_to_github: bool = Field(False, alias="saveToGitHub")
    github_token: Optional[str] = None
    github_user: Optional[str] = None
    github_repository: Optional[str] = None
    github_branch: Optional[str] = None
    save_with_companion: bool = False
    foreground_save: bool = False

    # Save options
    filename_conflict_action: str = "uniquify"
    filename_replacement_character: Optional[str] = None
    confirm_filename: bool = False
    open_saved_page: bool = False
    background_save: bool = False
    bookmark_id: Optional[str] = None
    replace_bookmark_url: bool = Field(False, alias="replaceBookmarkURL")
    include_infobar: bool = False
    incognito: bool = False

    # Compression options, forwarded untouched to the page compressor
    insert_text_body: bool = False
    create_root_directory: bool = False
    self_extracting_archive: bool = False
    extract_data_from_page: bool = False
    insert_canonical_link: bool = False
    insert_meta_no_index: bool = False
    password: Optional[str] = None

    # Control messages
    page_hash: Optional[str] = Field(None, alias="hash")
    woleet_key: Optional[str] = None

    @field_validator("task_id", "bookmark_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_chunk(cls, value: Any) -> Any:
        """Accept raw bytes, a list of byte values, or base64 text."""
        if value is None or isinstance(value, (bytes, bytearray)):
            return value
        if isinstance(value, list):
            return bytes(value)
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as e:
                raise ValueError(f"data is not valid base64: {e}") from e
        return value

    def compression_options(self) -> dict[str, Any]:
        """Options forwarded to the page compressor."""
        return {
            "insert_text_body": self.insert_text_body,
            "create_root_directory": self.create_root_directory,
            "self_extracting_archive": self.self_extracting_archive,
            "extract_data_from_page": self.extract_data_from_page,
            "insert_canonical_link": self.insert_canonical_link,
            "insert_meta_no_index": self.insert_meta_no_index,
            "password": self.password,
            "include_infobar": self.include_infobar,
        }
