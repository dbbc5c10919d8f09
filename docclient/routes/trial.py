from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, File, HTTPException, Query, UploadFile

from docclient.application import SubmitOutcome, get_trial_session
from docclient.routes.uploads import read_selection

router = APIRouter(prefix="/trial/session", tags=["trial"])


@router.get("")
async def get_session() -> dict:
    return get_trial_session().snapshot()


@router.post("/document")
async def select_document(file: UploadFile = File(...)) -> dict:
    """Select the document for the next free-trial analysis."""
    session = get_trial_session()
    document = await read_selection(file)
    if not session.select_document(document):
        raise HTTPException(status_code=400, detail=session.snapshot())
    return session.snapshot()


@router.post("/submit")
async def submit(language: Literal["english", "hindi"] = Query(default="english")) -> dict:
    session = get_trial_session()
    outcome = await session.submit(language)
    if outcome is SubmitOutcome.REGISTRATION_REQUIRED:
        raise HTTPException(status_code=409, detail=session.snapshot())
    if outcome is SubmitOutcome.NO_DOCUMENT:
        raise HTTPException(status_code=400, detail=session.snapshot())
    data = session.snapshot()
    data["outcome"] = outcome.value
    return data


@router.post("/reset")
async def reset() -> dict:
    session = get_trial_session()
    session.reset()
    return session.snapshot()


@router.post("/language")
async def toggle_language() -> dict:
    session = get_trial_session()
    if session.translation_loading:
        raise HTTPException(status_code=409, detail="translation already in progress")
    await session.toggle_language()
    return session.snapshot()
