"""Exceptions raised by the WeChat integration layer."""
from __future__ import annotations


class WechatError(Exception):
    """Base class for every WeChat integration failure."""


class MalformedPayloadError(WechatError):
    """Inbound webhook body could not be parsed as a WeChat XML message."""


class SignatureMismatchError(WechatError):
    """Webhook signature did not match token + timestamp + nonce."""


class TransportError(WechatError):
    """Network or HTTP level failure while talking to the WeChat API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamApiError(WechatError):
    """WeChat answered with a nonzero errcode in its JSON envelope."""

    def __init__(self, errcode: int, errmsg: str, *, action: str = "") -> None:
        self.errcode = errcode
        self.errmsg = errmsg
        self.action = action
        prefix = f"{action}: " if action else ""
        super().__init__(f"{prefix}{errmsg} (errcode: {errcode})")

    def to_dict(self) -> dict[str, object]:
        return {"errcode": self.errcode, "errmsg": self.errmsg}
