from __future__ import annotations

from fastapi import APIRouter, File, HTTPException, UploadFile

from docclient.application import SubmitOutcome, TranslationMode, get_account_session
from docclient.routes.uploads import read_selection

router = APIRouter(prefix="/account/session", tags=["account"])


def _ensure_authenticated() -> None:
    session = get_account_session()
    if not session.authenticated:
        raise HTTPException(status_code=401, detail="login required")


@router.get("")
async def get_session() -> dict:
    return get_account_session().snapshot()


@router.post("/login")
async def login(payload: dict) -> dict:
    email = payload.get("email")
    password = payload.get("password")
    if not email or not password:
        raise HTTPException(status_code=400, detail="email and password are required")
    session = get_account_session()
    if not await session.login(str(email), str(password)):
        raise HTTPException(status_code=401, detail=session.snapshot())
    return session.snapshot()


@router.post("/logout")
async def logout() -> dict:
    session = get_account_session()
    session.logout()
    return session.snapshot()


@router.post("/document")
async def select_document(file: UploadFile = File(...)) -> dict:
    _ensure_authenticated()
    session = get_account_session()
    document = await read_selection(file)
    if not session.select_document(document):
        raise HTTPException(status_code=400, detail=session.snapshot())
    return session.snapshot()


@router.post("/open/{document_id}")
async def open_document(document_id: str) -> dict:
    _ensure_authenticated()
    session = get_account_session()
    if not await session.open_document(document_id):
        raise HTTPException(status_code=404, detail=session.snapshot())
    return session.snapshot()


@router.post("/submit")
async def submit() -> dict:
    session = get_account_session()
    outcome = await session.submit()
    if outcome is SubmitOutcome.LOGIN_REQUIRED:
        raise HTTPException(status_code=401, detail=session.snapshot())
    if outcome is SubmitOutcome.NO_DOCUMENT:
        raise HTTPException(status_code=400, detail=session.snapshot())
    data = session.snapshot()
    data["outcome"] = outcome.value
    return data


@router.post("/regenerate")
async def regenerate() -> dict:
    session = get_account_session()
    outcome = await session.regenerate()
    if outcome is SubmitOutcome.LOGIN_REQUIRED:
        raise HTTPException(status_code=401, detail=session.snapshot())
    data = session.snapshot()
    data["outcome"] = outcome.value
    return data


@router.post("/reset")
async def reset() -> dict:
    session = get_account_session()
    session.reset()
    return session.snapshot()


@router.post("/language")
async def toggle_language() -> dict:
    session = get_account_session()
    if session.translation_loading:
        raise HTTPException(status_code=409, detail="translation already in progress")
    await session.toggle_language()
    return session.snapshot()


@router.post("/translation-mode")
async def set_translation_mode(payload: dict) -> dict:
    use_ai = payload.get("use_ai", payload.get("useAI", True))
    mode = TranslationMode.REMOTE_BATCH if use_ai else TranslationMode.LOCAL_DICTIONARY
    session = get_account_session()
    if not session.set_translation_mode(mode):
        raise HTTPException(status_code=409, detail="translation already in progress")
    return session.snapshot()
