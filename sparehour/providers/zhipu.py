# providers/zhipu.py
# BigModel (Zhipu GLM) chat completions with 429 backoff.

import asyncio
import json
import logging
from typing import Optional

import httpx

from sparehour.providers.base import NarrativeError, RateLimited

log = logging.getLogger("sparehour.zhipu")

URL = "https://open.bigmodel.cn/api/paas/v4/chat/completions"


def extract_json(content: str) -> dict:
    """Pull the outermost {...} out of a model reply (models like to wrap JSON in prose)."""
    start = content.find("{")
    end = content.rfind("}")
    text = content[start:end + 1] if start >= 0 and end > start else content
    try:
        data = json.loads(text)
    except ValueError as e:
        raise NarrativeError("reply is not JSON") from e
    if not isinstance(data, dict):
        raise NarrativeError("reply JSON is not an object")
    return data


class ZhipuProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "glm-4.5-flash",
        timeout: float = 15.0,
        max_attempts: int = 3,
        backoff: float = 1.2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._transport = transport
        self._sleep = sleep

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise NarrativeError("no narrative credential configured")
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": 0.7,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}
        backoff = self.backoff
        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=headers,
                                         transport=self._transport) as client:
                # Up to max_attempts tries, only 429 is retried
                for attempt in range(self.max_attempts):
                    r = await client.post(URL, json=body)
                    if r.status_code == 200:
                        js = r.json()
                        content = (((js.get("choices") or [{}])[0].get("message") or {}).get("content") or "")
                        return str(content).strip()
                    if r.status_code == 429:
                        log.info("glm rate limited (attempt %d), backing off %.1fs", attempt + 1, backoff)
                        if attempt + 1 < self.max_attempts:
                            await self._sleep(backoff)
                            backoff *= 1.5
                        continue
                    raise NarrativeError(f"glm HTTP {r.status_code}")
        except httpx.HTTPError as e:
            raise NarrativeError(f"glm request failed: {e!r}") from e
        except ValueError as e:
            raise NarrativeError("glm returned non-JSON body") from e
        raise RateLimited(f"glm still rate limited after {self.max_attempts} attempts")
