"""Value objects exchanged with the WeChat service account API."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_API_BASE_URL = "https://api.weixin.qq.com"


@dataclass(frozen=True)
class WechatConfig:
    """Credentials and endpoint for one service account, fixed at startup."""

    app_id: str
    app_secret: str
    token: str
    encoding_aes_key: Optional[str] = None
    api_base_url: str = DEFAULT_API_BASE_URL

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "WechatConfig":
        return cls(
            app_id=cfg.get("WECHAT_APP_ID", ""),
            app_secret=cfg.get("WECHAT_APP_SECRET", ""),
            token=cfg.get("WECHAT_TOKEN", ""),
            encoding_aes_key=cfg.get("WECHAT_ENCODING_AES_KEY") or None,
            api_base_url=(cfg.get("WECHAT_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
        )


@dataclass
class FollowerPage:
    total: int
    count: int
    openids: List[str]
    next_openid: str

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "FollowerPage":
        openids = list((data.get("data") or {}).get("openid") or [])
        return cls(
            total=int(data.get("total") or 0),
            count=int(data.get("count") or len(openids)),
            openids=openids,
            next_openid=data.get("next_openid") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "count": self.count,
            "data": {"openid": list(self.openids)},
            "next_openid": self.next_openid,
        }


@dataclass
class TemplateMessageRequest:
    touser: str
    template_id: str
    data: Dict[str, Dict[str, str]]
    url: Optional[str] = None
    miniprogram: Optional[Dict[str, str]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "touser": self.touser,
            "template_id": self.template_id,
            "data": self.data,
        }
        if self.url:
            payload["url"] = self.url
        if self.miniprogram:
            payload["miniprogram"] = self.miniprogram
        return payload


@dataclass
class BatchResult:
    success: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"success": list(self.success), "failed": list(self.failed)}
