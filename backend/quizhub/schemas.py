# Pydantic request/response schemas.
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

# Request payload for email sign-up.
class SignUpIn(BaseModel):
    email: str
    password: str
    display_name: Optional[str] = None

# Request payload for email sign-in.
class SignInIn(BaseModel):
    email: str
    password: str

# Request payload for Google sign-in; a missing token means the popup was closed.
class GoogleSignInIn(BaseModel):
    id_token: Optional[str] = None

class IdentityOut(BaseModel):
    uid: str
    display_name: Optional[str]
    email: Optional[str]

class ProfileOut(BaseModel):
    display_name: str
    email: Optional[str]
    xp: int
    streak: int
    last_active: str
    quizzes_created: int
    quizzes_completed: int
    created_at: str

# Response model for a signed-in session.
class SessionOut(BaseModel):
    token: str
    identity: IdentityOut
    profile: Optional[ProfileOut]

# Response model for the current identity and its cached profile.
class MeOut(BaseModel):
    identity: IdentityOut
    profile: Optional[ProfileOut]
    loading: bool

# A multiple-choice question as typed into the authoring form.
class MultipleChoiceDraftIn(BaseModel):
    type: Literal["multiple_choice"]
    text: str = ""
    options: List[str] = Field(default_factory=lambda: [""] * 4, min_length=4, max_length=4)
    correct_index: int = Field(0, ge=0, le=3)

# A typed-answer question as typed into the authoring form.
class TypeInDraftIn(BaseModel):
    type: Literal["type_in"]
    text: str = ""
    answer: str = ""

QuestionDraftIn = Annotated[
    Union[MultipleChoiceDraftIn, TypeInDraftIn], Field(discriminator="type")
]

# Request payload for submitting a complete authoring form.
class QuizCreate(BaseModel):
    title: str
    questions: List[QuestionDraftIn] = Field(..., min_length=1)

# Response model for quiz list entries.
class QuizSummaryOut(BaseModel):
    id: str
    title: str
    creator_id: str
    creator_name: str
    question_count: int
    created_at: str

# Response model for taking a quiz without answers.
class QuizTakeOut(BaseModel):
    id: str
    title: str
    creator_name: str
    question_count: int
    created_at: str
    questions: List[Dict[str, Any]]

# Response model for the session-owned authoring draft.
class DraftOut(BaseModel):
    title: str
    questions: List[Dict[str, Any]]

# Partial update to one draft question.
class DraftQuestionUpdate(BaseModel):
    text: Optional[str] = None
    options: Optional[List[str]] = None
    correct_index: Optional[int] = None
    answer: Optional[str] = None

# Request payload for renaming the session-owned draft.
class DraftTitle(BaseModel):
    title: str

# Request payload for submitting the session-owned draft; title overrides the draft title.
class DraftSubmit(BaseModel):
    title: Optional[str] = None

# Request payload for answering the current question.
class AnswerIn(BaseModel):
    option_index: Optional[int] = Field(None, ge=0)
    text: Optional[str] = None

# Response model for a quiz attempt.
class AttemptOut(BaseModel):
    id: str
    quiz_id: str
    title: Optional[str]
    state: str
    question_count: int
    index: int
    score: int
    phase: Optional[str] = None
    question: Optional[Dict[str, Any]] = None
    selected_option: Optional[int] = None
    typed_answer: Optional[str] = None
    last_correct: Optional[bool] = None
    correct_answer: Optional[str] = None
    percentage: Optional[int] = None
    reward: Optional[int] = None
