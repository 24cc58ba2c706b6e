"""Public API surface for tb_share."""

from tb_share.auth import AuthState, AuthStateMachine, DeviceCode, DeviceCodeFlow
from tb_share.client import SharingClient, UploadResult
from tb_share.token_store import AuthToken, TokenStore

__all__ = [
    "AuthState",
    "AuthStateMachine",
    "AuthToken",
    "DeviceCode",
    "DeviceCodeFlow",
    "SharingClient",
    "TokenStore",
    "UploadResult",
]
