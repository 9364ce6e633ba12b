from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiError(RuntimeError):
	pass


def gemini_configured() -> bool:
	return bool(settings.gemini_api_key)


class GeminiClient:
	"""Text generation over Gemini, falling back to OpenRouter when configured."""

	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None,
			timeout: float = 30) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise GeminiError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "default-project"
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=timeout)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if settings.openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=timeout)

	async def __aenter__(self) -> "GeminiClient":
		return self

	async def __aexit__(self, *exc_info: Any) -> None:
		await self.aclose()

	async def generate(self, prompt: str, *, system: Optional[str] = None,
			history: Optional[List[Dict[str, str]]] = None) -> str:
		contents: List[Dict[str, Any]] = []
		for turn in history or []:
			role = "model" if turn.get("role") == "assistant" else "user"
			contents.append({"role": role, "parts": [{"text": turn.get("content", "")}]})
		contents.append({"role": "user", "parts": [{"text": prompt}]})
		payload: Dict[str, Any] = {"contents": contents}
		if system:
			payload["systemInstruction"] = {"parts": [{"text": system}]}
		try:
			return await self._post_gemini(payload)
		except (httpx.HTTPError, GeminiError) as err:
			if self._fallback_client is None:
				raise GeminiError(f"Gemini call failed: {err}") from err
			logger.warning("Gemini call failed, trying OpenRouter: %s", err)
			return await self._fallback_generate(prompt, system, history, err)

	async def _post_gemini(self, payload: Dict[str, Any]) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		try:
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError):
			raise GeminiError(f"Unexpected Gemini response: {r.text[:200]}") from None

	async def _fallback_generate(self, prompt: str, system: Optional[str],
			history: Optional[List[Dict[str, str]]], primary_error: Exception) -> str:
		headers = {
			"Authorization": f"Bearer {settings.openrouter_api_key}",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		messages: List[Dict[str, str]] = []
		if system:
			messages.append({"role": "system", "content": system})
		messages.extend({"role": t.get("role", "user"), "content": t.get("content", "")} for t in history or [])
		messages.append({"role": "user", "content": prompt})
		payload = {"model": settings.openrouter_model, "messages": messages}
		try:
			r = await self._fallback_client.post(settings.openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			return r.json()["choices"][0]["message"]["content"]
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise GeminiError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()
