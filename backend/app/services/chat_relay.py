from __future__ import annotations

import logging
from typing import AsyncIterator, Dict, List, Optional, Sequence

import httpx

from ..config import get_settings
from ..schemas import ChatMessage, ProfileSummary
from .profile_service import describe_diet, describe_goal

logger = logging.getLogger(__name__)

PERSONA_PROMPT = """You are a friendly, supportive Diet Maintenance Chatbot. Your role is to help users maintain healthy eating habits, track nutrition, and reach their health goals.

Key responsibilities:
- Provide personalized nutrition guidance
- Help log meals with calorie and macro estimates
- Offer meal suggestions and healthier alternatives
- Give motivational, non-judgmental support
- Educate with simple, evidence-based nutrition insights

Tone: Friendly, encouraging, positive, supportive
Always confirm meal entries and provide constructive feedback."""

CLOSING_PROMPT = """When users log meals:
1. Confirm what they ate
2. Provide estimated calories and macros (if not provided)
3. Offer a brief nutritional tip or suggestion
4. Keep responses concise and encouraging

When asked for meal suggestions:
- Consider their dietary preferences
- Provide 2-3 specific options with brief descriptions
- Include approximate calorie counts

Keep responses conversational and concise (2-4 sentences typically)."""


class RelayFailure(Exception):
    """Base class for failures the chat endpoint turns into JSON errors."""


class RelayNotConfigured(RelayFailure):
    pass


class RateLimited(RelayFailure):
    pass


class QuotaExceeded(RelayFailure):
    pass


class UpstreamError(RelayFailure):
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"AI Gateway error: {status_code}")
        self.status_code = status_code
        self.body = body


def classify_upstream_failure(status_code: int, body: str) -> RelayFailure:
    if status_code == 429:
        return RateLimited(body)
    if status_code == 402:
        return QuotaExceeded(body)
    return UpstreamError(status_code, body)


def build_system_prompt(profile: Optional[ProfileSummary]) -> str:
    prompt = PERSONA_PROMPT
    if profile is not None:
        prompt += "\n\nUser Profile:"
        goal = describe_goal(profile.health_goal)
        if goal:
            prompt += f"\n- Goal: {goal}"
        diet = describe_diet(profile.dietary_preference)
        if diet:
            prompt += f"\n- Diet: {diet}"
        if profile.daily_calorie_target:
            prompt += f"\n- Daily calorie target: {profile.daily_calorie_target} calories"
    return f"{prompt}\n\n{CLOSING_PROMPT}"


def build_messages(
    messages: Sequence[ChatMessage],
    profile: Optional[ProfileSummary] = None,
) -> List[Dict[str, str]]:
    """Prepend the synthesized system turn; caller turns are forwarded as-is."""
    forwarded = [{"role": "system", "content": build_system_prompt(profile)}]
    forwarded.extend({"role": msg.role, "content": msg.content} for msg in messages)
    return forwarded


class UpstreamStream:
    """An open upstream response whose decoded body is forwarded chunk by chunk."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self._client = client
        self._response = response

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            # Decoded bytes; the caller response carries no Content-Encoding
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            # Headers are already sent; the caller just sees a truncated stream
            logger.warning("Upstream stream interrupted: %s", exc)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class ChatRelay:
    """Forwards chat turns to the AI gateway and hands back its event stream."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        endpoint: str,
        model: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def build_payload(
        self,
        messages: Sequence[ChatMessage],
        profile: Optional[ProfileSummary] = None,
    ) -> Dict[str, object]:
        return {
            "model": self.model,
            "messages": build_messages(messages, profile),
            "stream": True,
        }

    async def open_stream(
        self,
        messages: Sequence[ChatMessage],
        profile: Optional[ProfileSummary] = None,
    ) -> UpstreamStream:
        if not self.api_key:
            logger.error("AI gateway API key is not configured")
            raise RelayNotConfigured("AI service not configured")

        logger.info("Calling AI gateway with %d messages", len(messages))
        client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        request = client.build_request(
            "POST",
            self.endpoint,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept-Encoding": "identity",
            },
            json=self.build_payload(messages, profile),
        )
        try:
            response = await client.send(request, stream=True)
        except BaseException:
            await client.aclose()
            raise

        if response.is_success:
            return UpstreamStream(client, response)

        try:
            raw = await response.aread()
        finally:
            try:
                await response.aclose()
            finally:
                await client.aclose()
        body = raw.decode("utf-8", errors="replace")
        logger.error("AI gateway error: %s %s", response.status_code, body)
        raise classify_upstream_failure(response.status_code, body)


def get_chat_relay() -> ChatRelay:
    settings = get_settings()
    return ChatRelay(
        settings.ai_gateway_api_key,
        endpoint=settings.ai_gateway_url,
        model=settings.chat_model,
        timeout=settings.ai_gateway_timeout,
    )
