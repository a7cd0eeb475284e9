from pydantic import BaseModel, Field


class ConnectivityRequest(BaseModel):
    online: bool = Field(..., description="Platform reachability after the transition")


class SessionRequest(BaseModel):
    token: str = Field(..., min_length=1, description="Bearer token issued by the backend")
    student_id: str | None = None


class CompleteLessonRequest(BaseModel):
    quiz_score: float = Field(0, ge=0, alias="quizScore")
    total_questions: int = Field(0, ge=0, alias="totalQuestions")
    time_spent_seconds: int = Field(0, ge=0, alias="timeSpentSeconds")

    model_config = {"populate_by_name": True}


class ProgressEntryResponse(BaseModel):
    lesson_id: str
    state: str
    quiz_score: float
    total_questions: int
    time_spent_seconds: int
    is_completed: bool
    completed_at: str | None = None
    confirmed: bool


class TranslateRequest(BaseModel):
    q: str = Field("", description="Text to translate")
    source: str = "en"
    target: str


class TranslateResponse(BaseModel):
    translatedText: str
    origin: str
    approximate: bool
