"""Report sharing: device-code login and uploads."""

from tb_share.api import AuthToken, SharingClient, TokenStore, UploadResult

__all__ = ["AuthToken", "SharingClient", "TokenStore", "UploadResult"]
