"""
FastAPI backend for appointment wallet passes.
"""

import logging
import re
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
import httpx
import uvicorn

from .config import Settings, load_settings
from .middleware import RequestSizeLimitMiddleware
from .models import AppointmentRequest, DeviceRegistration
from .services.image_processor import ImageProcessor
from .services.pass_assembler import PassAssembler
from .services.pkpass_creator import PKPASS_MEDIA_TYPE
from .services.push_notifier import PushNotifier
from .services.registration_relay import (
    NotificationRegistry,
    RegistrationRelay,
    RegistryNotConfigured,
    WebhookRegistry,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SAFE_PASS_NAME = re.compile(r'^[\w\-]+\.pkpass$')
SENSITIVE_HEADERS = {"authorization", "cookie"}

TEST_REGISTRATION = DeviceRegistration(
    serial_number="1747974852983",
    device_library_identifier="testtoken",
    push_token="test_push_token_ABC123",
)


def loggable_headers(request: Request) -> dict:
    """Request headers with credentials masked"""
    return {
        name: ("***" if name in SENSITIVE_HEADERS else value)
        for name, value in request.headers.items()
    }


async def read_json_body(request: Request) -> dict:
    """Request body as a dict; empty when missing or not a JSON object"""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[NotificationRegistry] = None,
    signer=None,
    push_notifier: Optional[PushNotifier] = None,
    image_processor: Optional[ImageProcessor] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration, loaded from the environment when omitted
        registry: Device registry used by the registration relay
        signer: Manifest signer, OpenSSL-based by default
        push_notifier: APNs client for pass update pushes
        image_processor: Strip image renderer

    Returns:
        Configured FastAPI app
    """
    settings = settings or load_settings()
    registry = registry or WebhookRegistry.from_settings(settings)

    assembler = PassAssembler(settings, signer=signer, image_processor=image_processor)
    relay = RegistrationRelay(registry)
    notifier = push_notifier or PushNotifier(settings)

    app = FastAPI(
        title="Appointment Pass API",
        description="Generate Apple Wallet passes for appointments",
        version="1.0.0"
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.max_body_size)

    @app.middleware("http")
    async def log_post_requests(request: Request, call_next):
        # Runs around route dispatch; never decides which route handles the request
        if request.method == "POST":
            logger.info(f"POST request received: {request.url.path}")
            logger.debug(f"Headers: {loggable_headers(request)}")
        return await call_next(request)

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {"status": "healthy", "service": "Appointment Pass API"}

    @app.post("/generate-pass")
    async def generate_pass(request: Request):
        """
        Build a pass bundle from appointment data.

        Returns:
            Pass URL and identifiers, or 500 with error details
        """
        try:
            payload = await request.json()
            appointment = AppointmentRequest.model_validate(payload)
            return await run_in_threadpool(assembler.assemble, appointment, str(request.base_url))
        except Exception as e:
            logger.error(f"Error generating pass: {e}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to generate pass", "details": str(e)}
            )

    @app.get("/passes/{file_name}")
    async def download_pass(file_name: str):
        """Serve a previously generated bundle"""
        path = settings.output_dir / file_name
        if not SAFE_PASS_NAME.match(file_name) or not path.is_file():
            return JSONResponse(status_code=404, content={"error": "Pass not found"})
        return FileResponse(path, media_type=PKPASS_MEDIA_TYPE, filename=file_name)

    @app.post(
        "/api/v1/passes/v1/devices/{device_library_identifier}"
        "/registrations/{pass_type_identifier}/{serial_number}"
    )
    async def register_device(request: Request, device_library_identifier: str,
                              pass_type_identifier: str, serial_number: str):
        """Apple Wallet device registration callback"""
        logger.info(f"Apple Wallet callback received for {pass_type_identifier}/{serial_number}")
        body = await read_json_body(request)
        result = await relay.register_device(
            device_library_identifier=device_library_identifier,
            serial_number=serial_number,
            authorization=request.headers.get("authorization"),
            push_token=body.get("pushToken"),
        )
        return PlainTextResponse(result.message, status_code=result.status_code)

    @app.post("/api/v1/push-update")
    async def push_update(request: Request):
        """Ask a device to refresh a pass"""
        body = await read_json_body(request)
        push_token = body.get("pushToken")
        if not isinstance(push_token, str) or not push_token:
            return JSONResponse(status_code=400, content={"success": False})

        try:
            result = await notifier.send(push_token, body.get("passTypeIdentifier"))
        except httpx.HTTPError as e:
            logger.error(f"Push gateway unreachable: {e}")
            return JSONResponse(status_code=502, content={"success": False})
        except Exception as e:
            logger.error(f"Push could not be prepared: {e}")
            return JSONResponse(status_code=500, content={"success": False})

        if result.success:
            logger.info(f"Push sent for serial {body.get('serialNumber')}")
            return {"success": True}
        return JSONResponse(status_code=result.status_code, content={"success": False})

    @app.get("/test-push-token")
    async def test_push_token():
        """Send a sample registration to the registry webhook"""
        try:
            response = await registry.register(TEST_REGISTRATION)
        except (httpx.HTTPError, RegistryNotConfigured) as e:
            logger.error(f"Error sending test webhook: {e}")
            return PlainTextResponse("Error sending test webhook", status_code=500)
        return PlainTextResponse(
            f"Webhook responded: {response.status_code} - {response.text}",
            status_code=response.status_code,
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "appointment_pass.main:app",
        host="0.0.0.0",
        port=load_settings().port,
        log_level="info"
    )
