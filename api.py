# api.py (keyword extraction + resume scoring backend)
import json
import logging
import os
from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

import ai_analyzer
from analyzer import KeywordInsight, analyze_resume, extract_keywords
from parser import (
    DocumentError,
    DocumentTooLargeError,
    UnsupportedFileError,
    extract_text_from_bytes,
)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

SEMANTIC_ENABLED = os.getenv("SEMANTIC_ENABLED", "1").lower() not in {"0", "false", "no", "off"}
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]
NO_KEYWORDS_MESSAGE = "Unable to detect any meaningful keywords in this document."

app = FastAPI(title="JD Keyword Scorer")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class KeywordPayload(BaseModel):
    label: Optional[str] = None
    canonical: Optional[str] = None
    importance: float = 0.0
    section: Optional[str] = None
    occurrences: int = 1
    source: Optional[str] = None
    variants: List[str] = Field(default_factory=list)
    coverage: float = 0.0


class SemanticScoreRequest(BaseModel):
    jdText: str
    resumeText: str
    keywords: List[KeywordPayload] = Field(default_factory=list)


class SemanticKeywordsRequest(BaseModel):
    jdText: str


def _semantic_available(use_semantic: bool = True) -> bool:
    return use_semantic and SEMANTIC_ENABLED and ai_analyzer.CLIENT is not None


async def _read_document(upload: UploadFile) -> str:
    data = await upload.read()
    try:
        return extract_text_from_bytes(data, upload.filename or "")
    except UnsupportedFileError as exc:
        raise HTTPException(status_code=415, detail=f"{upload.filename}: {exc}") from exc
    except DocumentTooLargeError as exc:
        raise HTTPException(status_code=413, detail=f"{upload.filename}: {exc}") from exc
    except DocumentError as exc:
        raise HTTPException(status_code=422, detail=f"{upload.filename}: {exc}") from exc


async def _resolve_jd_text(jd: Optional[UploadFile], jd_text: Optional[str]) -> str:
    if jd is not None:
        return await _read_document(jd)
    if jd_text and jd_text.strip():
        return jd_text.strip()
    raise HTTPException(status_code=400, detail="Provide a job description file or jd_text.")


def _parse_keywords(raw: str) -> List[KeywordInsight]:
    try:
        entries = json.loads(raw)
        if not isinstance(entries, list):
            raise ValueError("keywords must be a JSON array")
        return [KeywordInsight.from_dict(entry) for entry in entries if isinstance(entry, dict)]
    except (TypeError, ValueError, OverflowError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid keywords payload: {exc}") from exc


def _build_keywords(jd_text: str, use_semantic: bool) -> Dict[str, object]:
    keywords: List[KeywordInsight] = []
    questions: List[ai_analyzer.InterviewQuestion] = []
    source = "heuristic"

    if _semantic_available(use_semantic):
        extraction = ai_analyzer.extract_semantic_keywords(jd_text)
        keywords, questions = ai_analyzer.split_requirements(extraction)
        if keywords:
            source = "semantic"
        else:
            logger.info("Semantic keywords unavailable; falling back to heuristic extraction.")

    if not keywords:
        keywords = extract_keywords(jd_text)
        questions = []
    if not keywords:
        raise HTTPException(status_code=422, detail=NO_KEYWORDS_MESSAGE)

    return {"keywords": keywords, "questions": questions, "source": source}


@app.get("/api/health")
async def health():
    return {"status": "ok", "semantic_enabled": _semantic_available()}


@app.post("/api/keywords")
async def extract_keywords_endpoint(
    jd: Optional[UploadFile] = File(None),
    jd_text: Optional[str] = Form(None),
    use_semantic: bool = Form(True),
):
    text = await _resolve_jd_text(jd, jd_text)
    built = _build_keywords(text, use_semantic)
    return {
        "keywords": [asdict(keyword) for keyword in built["keywords"]],
        "questions": [asdict(question) for question in built["questions"]],
        "source": built["source"],
        "jd_text": text,
    }


@app.post("/api/analyze")
async def analyze_resumes_endpoint(
    resumes: List[UploadFile] = File(...),
    jd: Optional[UploadFile] = File(None),
    jd_text: Optional[str] = Form(None),
    keywords: Optional[str] = Form(None),
    use_semantic: bool = Form(True),
):
    text = await _resolve_jd_text(jd, jd_text)
    if keywords:
        frozen_keywords = _parse_keywords(keywords)
        source = "client"
    else:
        built = _build_keywords(text, use_semantic)
        frozen_keywords, source = built["keywords"], built["source"]
    if not frozen_keywords:
        raise HTTPException(status_code=422, detail=NO_KEYWORDS_MESSAGE)

    results = []
    for resume in resumes:
        resume_text = await _read_document(resume)
        logger.info("Scoring %s against %s keywords", resume.filename, len(frozen_keywords))
        analysis = analyze_resume(resume_text, frozen_keywords)

        assessment = None
        if _semantic_available(use_semantic):
            assessment = ai_analyzer.assess_resume(text, resume_text, frozen_keywords)

        results.append(
            {
                "filename": resume.filename,
                "score": ai_analyzer.blend_scores(
                    analysis.score, assessment.score if assessment else None
                ),
                "heuristic_score": analysis.score,
                "analysis": asdict(analysis),
                "semantic": asdict(assessment) if assessment else None,
                "engine_used": "blended" if assessment else "heuristic",
            }
        )

    results.sort(key=lambda item: item["score"], reverse=True)
    for rank, result in enumerate(results, start=1):
        result["rank"] = rank

    return {
        "results": results,
        "keywords": [asdict(keyword) for keyword in frozen_keywords],
        "keyword_source": source,
    }


@app.post("/api/semantic-score")
async def semantic_score_endpoint(request: SemanticScoreRequest):
    if ai_analyzer.CLIENT is None:
        raise HTTPException(status_code=503, detail="Semantic scoring is not configured on the server.")
    if not request.jdText.strip() or not request.resumeText.strip():
        raise HTTPException(status_code=400, detail="jdText and resumeText are required string fields.")

    try:
        keywords = [KeywordInsight.from_dict(item.model_dump()) for item in request.keywords]
    except (ValueError, OverflowError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid keywords payload: {exc}") from exc

    assessment = ai_analyzer.assess_resume(request.jdText, request.resumeText, keywords)
    if assessment is None:
        raise HTTPException(status_code=502, detail="Semantic scoring failed. Check the server logs for details.")
    return asdict(assessment)


@app.post("/api/semantic-keywords")
async def semantic_keywords_endpoint(request: SemanticKeywordsRequest):
    if ai_analyzer.CLIENT is None:
        raise HTTPException(status_code=503, detail="Semantic keyword extraction is not configured on the server.")
    if len(request.jdText.strip()) < ai_analyzer.MIN_JD_CHARS_FOR_KEYWORDS:
        raise HTTPException(
            status_code=400,
            detail=f"jdText must be a non-empty string (>= {ai_analyzer.MIN_JD_CHARS_FOR_KEYWORDS} chars).",
        )

    extraction = ai_analyzer.extract_semantic_keywords(request.jdText)
    if extraction is None:
        raise HTTPException(status_code=502, detail="Keyword extraction failed. Falling back to heuristics.")
    return asdict(extraction)
