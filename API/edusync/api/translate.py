from fastapi import APIRouter, Depends

from edusync.runtime.container import SyncRuntime, get_runtime
from edusync.schemas.sync import TranslateRequest, TranslateResponse

router = APIRouter(tags=["translation"])


@router.post("/translate", response_model=TranslateResponse)
async def translate(payload: TranslateRequest, runtime: SyncRuntime = Depends(get_runtime)):
    result = await runtime.translations.translate_detailed(payload.q, payload.source, payload.target)
    return TranslateResponse(translatedText=result.text, origin=result.origin, approximate=result.approximate)
