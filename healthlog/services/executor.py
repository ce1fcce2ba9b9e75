"""
LLM analysis executor.

`analyze(kind, content)` looks the kind up in a table of (prompt, output
model) pairs and asks the model for a structured output of that shape.
Sleep analysis has a handler but is not a queueable analysis kind.
"""

import uuid
from dataclasses import dataclass

import backoff
from httpx import HTTPStatusError
from openai import AsyncOpenAI, RateLimitError

from healthlog.config import get_settings
from healthlog.core.errors import UnknownAnalysisTypeError
from healthlog.core.logging import get_logger
from healthlog.models.analysis_job import AnalysisType
from healthlog.schemas.analysis import (
    AnalysisOutput,
    EnergyAnalysisResult,
    MoodAnalysisResult,
    NutritionAnalysisResult,
    SleepAnalysisResult,
    TriggerAnalysisResult,
)

logger = get_logger(__name__)

BASE_PROMPT = """You are a healthcare AI that analyzes personal journal entries.
Only report what the entry supports. When information is missing, leave optional
fields empty and lower your confidence."""


@dataclass(frozen=True)
class AnalysisHandler:
    """Prompt and output schema for one analysis kind."""

    name: str
    instructions: str
    output_model: type[AnalysisOutput]


MOOD = AnalysisHandler(
    name="mood",
    instructions=(
        "Analyze the entry for mood and emotional state. "
        "Mood scale: 10 euphoric, 8 happy, 5 neutral baseline, 3 low and struggling, "
        "1 hopeless or crisis level. Sentiment is mixed when both positive and "
        "negative elements are present."
    ),
    output_model=MoodAnalysisResult,
)

ENERGY = AnalysisHandler(
    name="energy",
    instructions=(
        "Analyze the entry for energy levels and fatigue indicators. "
        "Energy scale: 10 peak vitality, 5 neutral baseline, 1 severely depleted. "
        "Rate sleep quality from 1 to 10 only when sleep is mentioned."
    ),
    output_model=EnergyAnalysisResult,
)

NUTRITION = AnalysisHandler(
    name="nutrition",
    instructions=(
        "Analyze the entry for food and nutrition. List specific foods and general "
        "food categories. Estimate calories and macros in grams only when specific "
        "foods and reasonable portions are mentioned."
    ),
    output_model=NutritionAnalysisResult,
)

TRIGGERS = AnalysisHandler(
    name="triggers",
    instructions=(
        "Analyze the entry for addiction-treatment triggers: stressors, cravings, "
        "risk factors and coping strategies, then rate the overall risk level."
    ),
    output_model=TriggerAnalysisResult,
)

SLEEP = AnalysisHandler(
    name="sleep",
    instructions=(
        "Analyze the entry for sleep. Quality: 1-3 poor, 4-6 fair, 7-8 good, "
        "9-10 excellent. Report hours slept, patterns and disruptions when mentioned."
    ),
    output_model=SleepAnalysisResult,
)

HANDLERS: dict[AnalysisType, AnalysisHandler] = {
    AnalysisType.MOOD: MOOD,
    AnalysisType.ENERGY: ENERGY,
    AnalysisType.NUTRITION: NUTRITION,
    AnalysisType.TRIGGERS: TRIGGERS,
}


class AnalysisExecutor:
    """Runs one structured LLM extraction per call."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None) -> None:
        settings = get_settings()
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.llm_model

    async def analyze(
        self,
        analysis_type: AnalysisType | str,
        content: str,
        journal_entry_id: uuid.UUID | None = None,
    ) -> dict:
        """
        Run the analysis of `analysis_type` over `content`.

        Returns:
            The structured result as stored on the job record

        Raises:
            UnknownAnalysisTypeError: For kinds without a handler
        """
        try:
            handler = HANDLERS[AnalysisType(analysis_type)]
        except (KeyError, ValueError):
            raise UnknownAnalysisTypeError(analysis_type) from None

        output = await self._run(handler, content, journal_entry_id)
        return output.to_record()

    async def analyze_sleep(self, content: str, journal_entry_id: uuid.UUID | None = None) -> dict:
        """Sleep extraction; not wired into the queue."""
        output = await self._run(SLEEP, content, journal_entry_id)
        return output.to_record()

    @backoff.on_exception(
        backoff.expo,
        (RateLimitError, HTTPStatusError),
        max_tries=3,
        max_time=60,
    )
    async def _run(
        self,
        handler: AnalysisHandler,
        content: str,
        journal_entry_id: uuid.UUID | None,
    ) -> AnalysisOutput:
        response = await self.client.chat.completions.parse(
            model=self.model,
            messages=[
                {"role": "system", "content": f"{BASE_PROMPT}\n\n{handler.instructions}"},
                {"role": "user", "content": f"Journal entry:\n{content}"},
            ],
            response_format=handler.output_model,
        )

        message = response.choices[0].message
        if message.parsed is None:
            raise ValueError(message.refusal or f"No structured output for {handler.name} analysis")

        usage = response.usage
        logger.bind(
            entry_id=str(journal_entry_id) if journal_entry_id else None,
            analysis=handler.name,
            total_tokens=usage.total_tokens if usage else None,
        ).info("analysis_model_call_completed")
        return message.parsed
