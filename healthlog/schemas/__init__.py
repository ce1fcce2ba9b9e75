from healthlog.schemas.analysis import (
    AnalysisOptions,
    EnergyAnalysisOptions,
    EnergyAnalysisResult,
    MoodAnalysisOptions,
    MoodAnalysisResult,
    NutritionAnalysisOptions,
    NutritionAnalysisResult,
    SleepAnalysisResult,
    TriggerAnalysisOptions,
    TriggerAnalysisResult,
)
from healthlog.schemas.queue import JobCounts, QueueJobData

__all__ = [
    "AnalysisOptions",
    "MoodAnalysisOptions",
    "EnergyAnalysisOptions",
    "NutritionAnalysisOptions",
    "TriggerAnalysisOptions",
    "MoodAnalysisResult",
    "EnergyAnalysisResult",
    "NutritionAnalysisResult",
    "TriggerAnalysisResult",
    "SleepAnalysisResult",
    "JobCounts",
    "QueueJobData",
]
