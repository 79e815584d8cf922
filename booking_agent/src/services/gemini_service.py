"""
Google Gemini API Service

Использует google-genai SDK
"""

import asyncio
from typing import List, Dict, Any, Optional
from google import genai
from google.genai import types
from google.genai.types import GenerateContentConfig, Tool
import structlog

logger = structlog.get_logger(__name__)


class LLMError(Exception):
    """Ошибка вызова LLM"""


class LLMTimeoutError(LLMError):
    """LLM не ответил за отведенное время"""


class GeminiService:
    """
    Сервис для работы с Google Gemini API

    Поддерживает:
    - Генерацию текста и JSON
    - Function calling
    - Ограничение времени ответа
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout: float = 15.0,
        client: Optional[genai.Client] = None
    ):
        """
        Args:
            api_key: Google Gemini API Key
            model: Модель Gemini
            temperature: Temperature для LLM
            max_tokens: Максимум токенов в ответе
            timeout: Таймаут одного вызова в секундах
            client: Готовый клиент (для тестов)
        """
        self.client = client or genai.Client(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        logger.info(
            "gemini_service_initialized",
            model=self.model,
            temperature=self.temperature
        )

    @staticmethod
    def user_content(text: str) -> types.Content:
        return types.Content(role="user", parts=[types.Part(text=text)])

    @staticmethod
    def model_content(text: str) -> types.Content:
        return types.Content(role="model", parts=[types.Part(text=text)])

    @staticmethod
    def function_response_content(name: str, response: Dict[str, Any]) -> types.Content:
        """Результат выполнения функции для следующего шага диалога"""
        return types.Content(
            role="user",
            parts=[types.Part.from_function_response(name=name, response=response)]
        )

    async def generate_response(
        self,
        contents: List[types.Content],
        tools: Optional[List[Tool]] = None,
        system_instruction: Optional[str] = None,
        response_mime_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Генерация ответа от Gemini

        Args:
            contents: История диалога (последний элемент - текущий запрос)
            tools: Список доступных функций для function calling
            system_instruction: Системный промпт
            response_mime_type: "application/json" для структурированного ответа

        Returns:
            Dict с ключами text, function_calls, finish_reason, content

        Raises:
            LLMTimeoutError: Превышен таймаут
            LLMError: Любая другая ошибка API
        """
        config = GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
            tools=tools if tools else None,
            system_instruction=system_instruction,
            response_mime_type=response_mime_type,
        )

        logger.debug(
            "generating_gemini_response",
            contents_count=len(contents),
            tools_count=len(tools) if tools else 0,
            has_system_instruction=system_instruction is not None
        )

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.models.generate_content,
                    model=self.model,
                    contents=contents,
                    config=config
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning("gemini_timeout", timeout=self.timeout)
            raise LLMTimeoutError(f"Gemini did not answer in {self.timeout}s") from e
        except Exception as e:
            logger.error("gemini_generation_error", error=str(e), exc_info=True)
            raise LLMError(str(e)) from e

        result = self._parse_response(response)

        logger.info(
            "gemini_response_generated",
            has_text=result.get("text") is not None,
            function_calls=len(result["function_calls"]),
            finish_reason=str(result.get("finish_reason"))
        )

        return result

    def _parse_response(self, response) -> Dict[str, Any]:
        """
        Парсинг ответа от Gemini

        Args:
            response: Ответ от Gemini API

        Returns:
            Структурированный ответ
        """
        result = {
            "finish_reason": None,
            "text": None,
            "function_calls": [],
            "content": None,
        }

        if not response.candidates:
            logger.warning("no_candidates_in_response")
            return result

        candidate = response.candidates[0]
        result["finish_reason"] = candidate.finish_reason

        if not candidate.content or not candidate.content.parts:
            logger.warning("no_content_parts_in_candidate")
            return result

        result["content"] = candidate.content
        texts = []
        for part in candidate.content.parts:
            # Текстовый ответ
            if getattr(part, "text", None):
                texts.append(part.text)

            # Function call
            if getattr(part, "function_call", None):
                result["function_calls"].append({
                    "name": part.function_call.name,
                    "args": dict(part.function_call.args) if part.function_call.args else {}
                })

        if texts:
            result["text"] = "".join(texts)
        return result
