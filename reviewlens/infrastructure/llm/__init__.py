from .errors import (
    ClassifierError, ClassifierUnavailable, ClassifierTimeout, ClassifierMalformedResponse,
)
from .chat_client import ChatClient, ChatCompletion
from .sentiment_service import ReviewClassifier
from .insight_service import InsightGenerator, GeneratedInsight
