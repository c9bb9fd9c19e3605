"""
Gestionnaires d'exceptions métier -> réponses JSON.
- ValidationError: 400 (entrée refusée, rien n'a été envoyé au distant)
- PaymentError: 402 (aucun débit, l'utilisateur peut réessayer)
- PartialCommitError: 202 (paiement capturé, commande en cours de reprise)
- ConcurrencyConflict: 409
- RemoteStoreError: 503 (stockage distant indisponible)
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from freshcart.errors import ConcurrencyConflict, PartialCommitError, PaymentError, RemoteStoreError, ValidationError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def on_validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PaymentError)
    async def on_payment_error(request: Request, exc: PaymentError):
        return JSONResponse(
            status_code=402,
            content={"detail": exc.reason, "payment_reference": exc.payment_reference, "retry": True},
        )

    @app.exception_handler(PartialCommitError)
    async def on_partial_commit(request: Request, exc: PartialCommitError):
        return JSONResponse(
            status_code=202,
            content={
                "detail": "Paiement reçu, commande en cours de finalisation",
                "failed_stage": exc.stage,
                "reason": exc.reason,
                "payment_reference": exc.payment_reference,
                "retryable": True,
            },
        )

    @app.exception_handler(ConcurrencyConflict)
    async def on_conflict(request: Request, exc: ConcurrencyConflict):
        logger.error("app.concurrency_conflict path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(RemoteStoreError)
    async def on_remote_store_error(request: Request, exc: RemoteStoreError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})
