# schemas.py
from pydantic import BaseModel, Field
from typing import List, Optional

class UserCreate(BaseModel):
    name: str
    email: str
    password: str = Field(..., min_length=6)

class UserLogin(BaseModel):
    email: str
    password: str

class QuestionIn(BaseModel):
    id: Optional[int] = None               # keep an existing question on update
    type: str = "text"
    text: str
    required: bool = True
    options: List[str] = []

class FormCreate(BaseModel):
    title: str
    description: Optional[str] = None
    questions: List[QuestionIn] = []

class FormUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: Optional[List[QuestionIn]] = None
    is_active: Optional[bool] = None

class AnswerIn(BaseModel):
    question_id: int
    answer: str

class ResponseCreate(BaseModel):
    form_id: int
    answers: List[AnswerIn]

class PublicResponseCreate(BaseModel):
    answers: List[AnswerIn]
