"""
Generation Client - 文本生成能力

把 (system_prompt, messages) 交给大模型并返回回复文本。

设计原则：
- 支持 OpenAI 兼容接口（/chat/completions）与 Anthropic Messages 接口（/v1/messages）
- 通过环境变量配置模型端点和认证信息
- 所有失败（HTTP错误、超时、响应格式异常、未配置）统一抛出 ProviderError
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com",
}

DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "anthropic": "claude-3-5-haiku-20241022",
}


class ProviderError(Exception):
    """生成服务调用失败"""
    pass


class GenerationClient(ABC):
    """文本生成能力抽象接口"""

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_output_tokens: int,
        temperature: float
    ) -> str:
        """
        生成回复文本

        Args:
            system_prompt: 系统指令
            messages: 有序的 {role, content} 列表
            max_output_tokens: 最大输出 token 数
            temperature: 采样温度

        Returns:
            回复文本（已去除首尾空白）

        Raises:
            ProviderError: 生成服务不可用或返回异常
        """
        pass

    def is_configured(self) -> bool:
        return True

    async def aclose(self) -> None:
        """释放底层连接（可选）"""
        return None


class HttpGenerationClient(GenerationClient):
    """基于 httpx 的生成客户端"""

    def __init__(
        self,
        provider: str,
        api_key: Optional[str],
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        初始化生成客户端

        Args:
            provider: openai 或 anthropic
            api_key: API Key（为空时每次调用都会抛出 ProviderError）
            model: 模型名称（默认按 provider 选择）
            base_url: API 地址（默认按 provider 选择）
            timeout: 单次调用超时时间（秒）
            transport: 自定义 httpx transport（测试用）
        """
        provider = provider.lower()
        if provider not in DEFAULT_BASE_URLS:
            raise ValueError(f"Unsupported generation provider: {provider}")

        self.provider = provider
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS[provider]
        self.base_url = (base_url or DEFAULT_BASE_URLS[provider]).rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

        logger.info(
            f"HttpGenerationClient initialized (provider={provider}, model={self.model}, "
            f"configured={bool(api_key)})"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpGenerationClient":
        return cls(
            provider=settings.GENERATION_PROVIDER,
            api_key=settings.generation_api_key,
            model=settings.GENERATION_MODEL,
            base_url=settings.GENERATION_BASE_URL,
            timeout=settings.GENERATION_TIMEOUT,
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_output_tokens: int,
        temperature: float
    ) -> str:
        if not self.api_key:
            raise ProviderError("Generation API key is not configured")

        try:
            if self.provider == "anthropic":
                call = self._call_anthropic(system_prompt, messages, max_output_tokens, temperature)
            else:
                call = self._call_openai(system_prompt, messages, max_output_tokens, temperature)
            text = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Generation timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Generation request failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Generation request failed: {type(e).__name__}: {e}") from e
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            raise ProviderError(f"Malformed generation response: {e}") from e

        text = (text or "").strip()
        if not text:
            raise ProviderError("Generation returned empty text")
        return text

    async def _call_openai(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_output_tokens: int,
        temperature: float
    ) -> str:
        """
        调用 OpenAI 兼容的 Chat Completions API。

        系统指令作为第一条 system 消息发送。
        """
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "max_tokens": max_output_tokens,
            "temperature": temperature
        }

        response = await self._client.post(
            f"{self.base_url}/chat/completions",
            headers=headers,
            json=payload
        )
        response.raise_for_status()

        data = response.json()
        return data["choices"][0]["message"]["content"]

    async def _call_anthropic(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_output_tokens: int,
        temperature: float
    ) -> str:
        """
        调用 Anthropic Messages API。

        Anthropic 要求 user/assistant 交替出现，这里把上下文合并成一条 user 消息。
        """
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json"
        }

        transcript = "\n".join(m["content"] for m in messages) or "(no messages yet)"
        payload: Dict[str, Any] = {
            "model": self.model,
            "system": system_prompt,
            "max_tokens": max_output_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": transcript}]
        }

        response = await self._client.post(
            f"{self.base_url}/v1/messages",
            headers=headers,
            json=payload
        )
        response.raise_for_status()

        data = response.json()
        return "".join(
            block["text"] for block in data["content"] if block.get("type") == "text"
        )

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "ProviderError",
    "GenerationClient",
    "HttpGenerationClient",
]
