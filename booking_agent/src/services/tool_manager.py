"""
Tool Manager Service

Управляет инструментами (функциями) доступными для LLM через function calling
"""

from typing import Any, Callable, Dict, List, Optional
from google.genai.types import Tool, FunctionDeclaration
import structlog

from backend_integrations.src.base import BaseAvailabilityGateway, GatewayError
from shared.utils.text import normalize_phone

from ..config import SportConfig
from ..core.slot_builder import build_options, start_times

logger = structlog.get_logger(__name__)


class ToolManager:
    """
    Менеджер инструментов для свободного ответа

    Управляет:
    - Регистрацией доступных функций
    - Выполнением function calls от LLM
    - Интеграцией с бэкендом через шлюз
    """

    def __init__(
        self,
        gateway: BaseAvailabilityGateway,
        sports: List[SportConfig],
        current_hour_for: Callable[[str], int],
        default_sport: str = "Padel"
    ):
        """
        Args:
            gateway: Шлюз бэкенда бронирования
            sports: Виды спорта клуба
            current_hour_for: Текущий час для даты (0 если дата не сегодня)
            default_sport: Спорт по умолчанию
        """
        self.gateway = gateway
        self.sports = sports
        self.current_hour_for = current_hour_for
        self.default_sport = default_sport
        self.tools: Dict[str, Callable] = {
            "get_user": self.get_user,
            "get_hours": self.get_hours,
        }

        logger.info(
            "tool_manager_initialized",
            backend=gateway.get_backend_name(),
            tools_count=len(self.tools)
        )

    def get_tools_for_gemini(self) -> List[Tool]:
        """
        Получить список инструментов в формате Gemini API

        Returns:
            Список Tool объектов для Gemini
        """
        function_declarations = [
            # get_user
            FunctionDeclaration(
                name="get_user",
                description="Obtiene el nombre del cliente por teléfono. Úsalo para personalizar la conversación.",
                parameters={
                    "type": "object",
                    "properties": {
                        "phone": {
                            "type": "string",
                            "description": "Teléfono de 10 dígitos"
                        }
                    },
                    "required": ["phone"]
                }
            ),

            # get_hours
            FunctionDeclaration(
                name="get_hours",
                description="Consulta los horarios disponibles para un deporte y una fecha.",
                parameters={
                    "type": "object",
                    "properties": {
                        "sport": {
                            "type": "string",
                            "enum": [s.name for s in self.sports],
                            "description": "Deporte"
                        },
                        "date": {
                            "type": "string",
                            "description": "Fecha en formato YYYY-MM-DD"
                        }
                    },
                    "required": ["sport", "date"]
                }
            ),
        ]

        return [Tool(function_declarations=function_declarations)]

    async def execute_function(self, function_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """
        Выполнить function call от LLM

        Args:
            function_name: Имя функции
            arguments: Аргументы функции

        Returns:
            {"result": ...} или {"error": ...}
        """
        logger.info(
            "executing_function",
            function_name=function_name,
            argument_keys=sorted(arguments)
        )

        if function_name not in self.tools:
            logger.error("function_not_found", function_name=function_name)
            return {"error": f"Function '{function_name}' not found"}

        try:
            result = await self.tools[function_name](**arguments)
        except TypeError as e:
            logger.warning("function_bad_arguments", function_name=function_name, error=str(e))
            return {"error": "invalid arguments"}
        except GatewayError as e:
            logger.error(
                "function_execution_error",
                function_name=function_name,
                error=str(e)
            )
            return {"error": "backend unavailable"}

        logger.info("function_executed_successfully", function_name=function_name)
        return {"result": result}

    # ===== IMPLEMENTATIONS =====

    def _backend_sport(self, sport: Optional[str]) -> str:
        for item in self.sports:
            if sport and item.name.lower() == sport.lower():
                return item.backend_name
        return sport or self.default_sport

    async def get_user(self, phone: str) -> Dict[str, Any]:
        """Профиль пользователя"""
        profile = await self.gateway.get_user(normalize_phone(phone))
        return {"found": profile.found, "name": profile.name, "last_name": profile.last_name}

    async def get_hours(self, sport: str, date: str) -> Dict[str, Any]:
        """Свободные времена начала на дату"""
        slots = await self.gateway.get_available_slots(
            self._backend_sport(sport),
            date,
            current_hour=self.current_hour_for(date)
        )
        return {"sport": sport, "date": date, "hours": start_times(build_options(slots, 1))}
