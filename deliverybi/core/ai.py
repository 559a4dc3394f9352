from __future__ import annotations

import asyncio
from functools import lru_cache

from deliverybi.core.config import settings


class AIIntegrationError(RuntimeError):
    """Error de configuración o ejecución de la capa de IA."""


def _load_dependencies() -> tuple:
    try:
        from langchain_core.prompts import ChatPromptTemplate  # type: ignore
        from langchain_google_genai import ChatGoogleGenerativeAI  # type: ignore
    except ImportError as exc:  # pragma: no cover - feedback directo
        raise AIIntegrationError(
            "Dependencias de IA no encontradas. Instálalas con "
            "`pip install langchain-core langchain-google-genai`."
        ) from exc
    return ChatPromptTemplate, ChatGoogleGenerativeAI


@lru_cache(maxsize=1)
def _get_chain():
    if not settings.GOOGLE_API_KEY:
        raise AIIntegrationError(
            "GOOGLE_API_KEY no configurada. Define la clave de Gemini para formatear las alertas."
        )

    ChatPromptTemplate, ChatGoogleGenerativeAI = _load_dependencies()

    prompt = ChatPromptTemplate.from_template(
        "Eres un asistente que redacta alertas diarias de Slack para consultores de restaurantes "
        "en Glovo y Uber Eats.\n"
        "Fecha analizada: {date_label}.\n"
        "Recibes las anomalías agrupadas por consultor en JSON.\n"
        "Reglas:\n"
        "- Empieza con la línea `*Alertas diarias — {date_label}*`.\n"
        "- Para cada grupo, abre con `<@slack_user_id>` si existe, si no con `*nombre*`.\n"
        "- Secciones en este orden, omitiendo las vacías: Pedidos, Resenas, Promos, Publicidad.\n"
        "- Una línea por restaurante con empresa, marca, dirección, canal y los números clave.\n"
        "- Usa formato mrkdwn de Slack y emojis `:red_circle:`, `:star:`, `:ticket:`, `:loudspeaker:`.\n"
        "- No inventes datos ni añadas conclusiones.\n\n"
        "Datos:\n{groups_json}\n\n"
        "Responde SOLO con el mensaje final."
    )

    llm = ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL_NAME,
        google_api_key=settings.GOOGLE_API_KEY,
        temperature=settings.GEMINI_TEMPERATURE,
        max_output_tokens=settings.GEMINI_MAX_OUTPUT_TOKENS,
    )

    return prompt | llm


async def format_alert_message(groups_json: str, date_label: str) -> str:
    """
    Ejecuta la cadena LangChain de forma asíncrona y devuelve el texto del mensaje.
    """
    if not groups_json.strip():
        raise AIIntegrationError("No hay anomalías que formatear.")

    chain = _get_chain()

    def _runner() -> str:
        result = chain.invoke({"groups_json": groups_json, "date_label": date_label})
        return result.content.strip() if hasattr(result, "content") else ""

    loop = asyncio.get_running_loop()
    try:
        text = await loop.run_in_executor(None, _runner)
    except Exception as exc:  # pragma: no cover - feedback directo
        raise AIIntegrationError(f"Fallo al consultar Gemini: {exc}") from exc
    if not text:
        raise AIIntegrationError("Gemini devolvió una respuesta vacía.")
    return text


__all__ = ["AIIntegrationError", "format_alert_message"]
