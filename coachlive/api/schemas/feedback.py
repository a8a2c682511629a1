from pydantic import BaseModel, Field

from coachlive.domain.session.session_models import FeedbackResponse


class SubmitFeedbackIn(BaseModel):
    session_id: str = Field(description="Ended session the feedback is about")
    rating: int = Field(ge=1, le=5, description="Rating from 1 to 5")
    comment: str | None = Field(default=None, max_length=2000)


class ListFeedbackOut(BaseModel):
    session_id: str
    feedback: list[FeedbackResponse]
