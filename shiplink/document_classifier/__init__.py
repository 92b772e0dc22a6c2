from shiplink.document_classifier.ai_classifier import AIDocumentClassifier
from shiplink.document_classifier.patterns import CARRIER_RULE_SETS, ClassificationInput, match_patterns
from shiplink.document_classifier.service import ClassificationResult, DocumentClassificationService
from shiplink.document_classifier.thread import ThreadContext, analyze_thread

__all__ = [
    "AIDocumentClassifier",
    "CARRIER_RULE_SETS",
    "ClassificationInput",
    "ClassificationResult",
    "DocumentClassificationService",
    "ThreadContext",
    "analyze_thread",
    "match_patterns",
]
