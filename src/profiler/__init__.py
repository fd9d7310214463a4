from .orchestrator import AnalysisOrchestrator
from .models import AnalysisRecord, AnalysisStatus, AnalyzedPageRecord, ContactInfo, StructuredProfile
from .storage import AnalysisStore, InMemoryAnalysisStore
from .synthesizer import LLMSynthesizer, Synthesizer

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisRecord",
    "AnalysisStatus",
    "AnalyzedPageRecord",
    "AnalysisStore",
    "ContactInfo",
    "InMemoryAnalysisStore",
    "LLMSynthesizer",
    "StructuredProfile",
    "Synthesizer",
]
