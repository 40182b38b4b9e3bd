"""WeChat Service Account API wrapper."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from mpbridge.services.rate_limit import run_rate_limited
from mpbridge.wechat.errors import TransportError, UpstreamApiError
from mpbridge.wechat.models import BatchResult, FollowerPage, TemplateMessageRequest, WechatConfig
from mpbridge.wechat.token_cache import TokenCache

logger = logging.getLogger(__name__)

# invalid credential, invalid access_token, access_token expired
TOKEN_ERRCODES = frozenset({40001, 40014, 42001})


def build_session(retries: int = 2) -> requests.Session:
    """Session with a small retry allowance for connect errors and GETs."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        redirect=retries,
        status=0,
        backoff_factor=0.2,
        allowed_methods=frozenset({"GET"}),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class WeChatServiceAPI:
    """Client for the service account endpoints, aware of the access token cache."""

    def __init__(
        self,
        config: WechatConfig,
        token_cache: TokenCache | None = None,
        session: requests.Session | None = None,
        timeout: float = 10,
        template_send_interval: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.token_cache = token_cache or TokenCache()
        self.session = session or build_session()
        self.timeout = timeout
        self.template_send_interval = template_send_interval
        self._sleep = sleep
        self.base_url = f"{config.api_base_url}/cgi-bin"

    # --- transport ---

    def _decode(self, response: requests.Response, action: str) -> Dict[str, Any]:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise TransportError(f"{action}: HTTP {response.status_code}", status_code=response.status_code) from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError(f"{action}: response is not JSON", status_code=response.status_code) from exc
        if not isinstance(data, dict):
            raise TransportError(f"{action}: unexpected response shape", status_code=response.status_code)
        errcode = data.get("errcode")
        if errcode in TOKEN_ERRCODES:
            logger.warning("Access token rejected by WeChat errcode=%s, clearing cache", errcode)
            self.token_cache.invalidate()
        return data

    def _get_json(self, path: str, params: Dict[str, Any], action: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"{action}: {exc}") from exc
        return self._decode(response, action)

    def _post_json(self, path: str, payload: Dict[str, Any], action: str) -> Dict[str, Any]:
        token = self.get_access_token()
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json; charset=utf-8"}
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        try:
            response = self.session.post(
                url,
                params={"access_token": token},
                data=body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{action}: {exc}") from exc
        return self._decode(response, action)

    @staticmethod
    def _raise_for_errcode(data: Dict[str, Any], action: str) -> None:
        errcode = data.get("errcode")
        if errcode:
            raise UpstreamApiError(int(errcode), str(data.get("errmsg", "")), action=action)

    # --- access token ---

    def get_access_token(self) -> str:
        cached = self.token_cache.get()
        if cached is not None:
            logger.debug("Using cached access token")
            return cached.value

        params = {
            "grant_type": "client_credential",
            "appid": self.config.app_id,
            "secret": self.config.app_secret,
        }
        data = self._get_json("/token", params, "get access token")
        self._raise_for_errcode(data, "get access token")
        access_token = data.get("access_token")
        if not access_token:
            raise UpstreamApiError(-1, "response carried no access_token", action="get access token")
        expires_in = int(data.get("expires_in", 7200))
        self.token_cache.set(access_token, expires_in)
        logger.info("Fetched new access token expires_in=%s", expires_in)
        return access_token

    def clear_access_token(self) -> None:
        self.token_cache.invalidate()
        logger.info("Access token cache cleared")

    # --- followers ---

    def get_followers(self, next_openid: Optional[str] = None) -> FollowerPage:
        params = {"access_token": self.get_access_token()}
        if next_openid:
            params["next_openid"] = next_openid
        data = self._get_json("/user/get", params, "get followers")
        self._raise_for_errcode(data, "get followers")
        return FollowerPage.from_payload(data)

    def get_all_follower_openids(self) -> List[str]:
        """Walk every follower page.

        ``total`` is read once from the first page and only reported; the
        walk ends when ``next_openid`` comes back empty or unchanged, or a
        page carries no openids.
        """
        first = self.get_followers()
        total = first.total
        openids = list(first.openids)
        next_openid = first.next_openid
        while next_openid:
            page = self.get_followers(next_openid)
            if not page.openids:
                break
            openids.extend(page.openids)
            if page.next_openid == next_openid:
                logger.warning("Follower cursor %s did not advance, stopping", next_openid)
                break
            next_openid = page.next_openid
        logger.info("Fetched %s follower openids (reported total %s)", len(openids), total)
        return openids

    def get_user_info(self, openid: str, lang: str = "zh_CN") -> Dict[str, Any]:
        params = {"access_token": self.get_access_token(), "openid": openid, "lang": lang}
        data = self._get_json("/user/info", params, "get user info")
        self._raise_for_errcode(data, f"get user info openid={openid}")
        return data

    # --- templates ---

    def get_template_list(self) -> List[Dict[str, Any]]:
        params = {"access_token": self.get_access_token()}
        data = self._get_json("/template/get_all_private_template", params, "get template list")
        self._raise_for_errcode(data, "get template list")
        return list(data.get("template_list") or [])

    def send_template_message(self, request: TemplateMessageRequest) -> Dict[str, Any]:
        """Send one template message.

        A nonzero ``errcode`` is a delivery failure and is returned to the
        caller as-is; only transport problems raise.
        """
        data = self._post_json("/message/template/send", request.to_payload(), "send template message")
        data.setdefault("errcode", 0)
        data.setdefault("errmsg", "ok")
        if data["errcode"] != 0:
            logger.warning(
                "Template message to %s rejected: %s (errcode: %s)",
                request.touser,
                data.get("errmsg"),
                data["errcode"],
            )
        else:
            logger.info("Template message sent to %s msgid=%s", request.touser, data.get("msgid"))
        return data

    def send_batch_template_message(
        self,
        openids: List[str],
        template_id: str,
        data: Dict[str, Dict[str, str]],
        url: Optional[str] = None,
        miniprogram: Optional[Dict[str, str]] = None,
    ) -> BatchResult:
        def _send(openid: str) -> Dict[str, Any]:
            return self.send_template_message(
                TemplateMessageRequest(
                    touser=openid,
                    template_id=template_id,
                    data=data,
                    url=url,
                    miniprogram=miniprogram,
                )
            )

        result = BatchResult()
        outcomes = run_rate_limited(openids, _send, self.template_send_interval, sleep=self._sleep)
        for outcome in outcomes:
            if outcome.ok and outcome.value.get("errcode") == 0:
                result.success.append(outcome.item)
            else:
                result.failed.append(outcome.item)
        logger.info("Batch template send done success=%s failed=%s", len(result.success), len(result.failed))
        return result

    def send_template_message_to_all(
        self,
        template_id: str,
        data: Dict[str, Dict[str, str]],
        url: Optional[str] = None,
    ) -> BatchResult:
        openids = self.get_all_follower_openids()
        return self.send_batch_template_message(openids, template_id, data, url=url)

    # --- customer service ---

    def send_text_message(self, user_id: str, content: str) -> Dict[str, Any]:
        payload = {
            "touser": user_id,
            "msgtype": "text",
            "text": {"content": content},
        }
        data = self._post_json("/message/custom/send", payload, "send text message")
        self._raise_for_errcode(data, f"send text message openid={user_id}")
        logger.info("Customer service message sent to %s", user_id)
        return data
