"""Structured analysis outputs and advisory analysis options.

Result models are used as OpenAI `response_format` schemas; they are stored on
the job record with camelCase keys, which is what the dashboard reads.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AnalysisOutput(BaseModel):
    """Base for model outputs, serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        """Payload stored on the job record."""
        return self.model_dump(by_alias=True, mode="json")


class MoodAnalysisResult(AnalysisOutput):
    sentiment: Literal["positive", "negative", "neutral", "mixed"] = Field(
        description="Overall sentiment of the entry",
    )
    emotions: list[str] = Field(description="Emotions expressed in the entry")
    mood_scale: int = Field(description="Mood from 1 (crisis) to 10 (euphoric)", ge=1, le=10)
    confidence: float = Field(description="Confidence from 0 to 1", ge=0, le=1)


class EnergyAnalysisResult(AnalysisOutput):
    energy_level: int = Field(description="Energy from 1 (depleted) to 10 (peak)", ge=1, le=10)
    fatigue_indicators: list[str] = Field(description="Phrases indicating fatigue")
    sleep_quality: int | None = Field(
        default=None,
        description="Sleep quality from 1 to 10 when mentioned",
        ge=1,
        le=10,
    )
    confidence: float = Field(description="Confidence from 0 to 1", ge=0, le=1)


class Macros(AnalysisOutput):
    protein: float | None = Field(default=None, description="Estimated grams of protein")
    carbs: float | None = Field(default=None, description="Estimated grams of carbohydrates")
    fats: float | None = Field(default=None, description="Estimated grams of fat")


class NutritionAnalysisResult(AnalysisOutput):
    food_mentions: list[str] = Field(description="Foods and food categories mentioned")
    estimated_calories: float | None = Field(
        default=None,
        description="Estimated total calories, only when portions are clear",
    )
    macros: Macros | None = Field(default=None, description="Estimated macronutrients")
    meal_timing: list[str] | None = Field(default=None, description="Meals and when they happened")
    confidence: float = Field(description="Confidence from 0 to 1", ge=0, le=1)


class TriggerAnalysisResult(AnalysisOutput):
    stressor: list[str] = Field(description="Stressors mentioned in the entry")
    cravings: list[str] = Field(description="Cravings mentioned in the entry")
    risk_factors: list[str] = Field(description="Relapse or wellbeing risk factors")
    coping_strategies: list[str] = Field(description="Coping strategies used or mentioned")
    risk_level: Literal["low", "medium", "high"] = Field(description="Overall risk level")
    confidence: float = Field(description="Confidence from 0 to 1", ge=0, le=1)


class SleepAnalysisResult(AnalysisOutput):
    sleep_quality: int = Field(description="Sleep quality from 1 to 10", ge=1, le=10)
    sleep_duration: float | None = Field(default=None, description="Hours slept")
    sleep_patterns: list[str] | None = Field(default=None, description="Bedtime and wake patterns")
    sleep_disruptions: list[str] | None = Field(default=None, description="What disrupted sleep")
    confidence: float = Field(description="Confidence from 0 to 1", ge=0, le=1)


# =============================================================================
# Advisory options collected by the analysis builder
# =============================================================================


class MoodAnalysisOptions(BaseModel):
    type: Literal["mood"] = "mood"
    extract_sentiment: bool = True
    extract_emotions: bool = True
    extract_mood_scale: bool = True


class EnergyAnalysisOptions(BaseModel):
    type: Literal["energy"] = "energy"
    extract_energy_level: bool = True
    extract_fatigue_indicators: bool = True
    extract_sleep_quality: bool = True


class NutritionAnalysisOptions(BaseModel):
    type: Literal["nutrition"] = "nutrition"
    extract_food_mentions: bool = True
    extract_calorie_estimates: bool = True
    extract_macros: bool = True
    extract_meal_timing: bool = True


class TriggerAnalysisOptions(BaseModel):
    type: Literal["triggers"] = "triggers"
    extract_stressors: bool = True
    extract_cravings: bool = True
    extract_risk_factors: bool = True
    extract_coping_strategies: bool = True


AnalysisOptions = Annotated[
    MoodAnalysisOptions | EnergyAnalysisOptions | NutritionAnalysisOptions | TriggerAnalysisOptions,
    Field(discriminator="type"),
]
