import os
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import APIRouter, Depends, FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

# Import APScheduler for the background discovery job
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from soundtouch_cloud import CloudService
from soundtouch_cloud.config import CloudConfig
from soundtouch_cloud.errors import (
    CloudError, DeviceNotFound, InvalidSlot, MalformedInput, PersistenceFailed,
    ResolutionFailed, ResolutionIncomplete, UnresolvableReference, ZoneInvalid,
)
from soundtouch_cloud.events import ChangeEvent
from soundtouch_cloud.logging_utils import setup_logging
from soundtouch_cloud.models import ContentReference, Device, RecordKind, Source
from soundtouch_cloud.registry import BASS_RANGE
from soundtouch_cloud import xml_codec

from cloud_config import load_cloud_config, load_device_seeds

# Configure structured logging based on environment variables
log_level = os.getenv("LOG_LEVEL", "INFO")
log_format = os.getenv("LOG_FORMAT", "text")
setup_logging(log_level=log_level, log_format=log_format)

logger = logging.getLogger(__name__)

XML_MEDIA_TYPE = "application/xml"

# Most specific class wins, so ZoneInvalid maps to 400 even though it is a DeviceNotFound
ERROR_STATUS = {
    ZoneInvalid: 400,
    DeviceNotFound: 404,
    InvalidSlot: 400,
    MalformedInput: 400,
    UnresolvableReference: 400,
    PersistenceFailed: 500,
    ResolutionFailed: 502,
    ResolutionIncomplete: 502,
}


def status_for(error: CloudError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def xml_response(body: str, status_code: int = 200) -> Response:
    return Response(content=body, status_code=status_code, media_type=XML_MEDIA_TYPE)


def ok() -> Response:
    return xml_response(xml_codec.render_status())


class NotificationHub:
    """Pushes EventBus events to connected WebSocket clients"""

    def __init__(self):
        self.clients: Set[WebSocket] = set()
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        self.clients.add(websocket)
        await websocket.accept()
        logger.info(f"WebSocket client connected ({len(self.clients)} total)")

    def disconnect(self, websocket: WebSocket) -> None:
        self.clients.discard(websocket)
        logger.info("WebSocket client disconnected")

    def on_event(self, event: ChangeEvent) -> None:
        """EventBus observer; may be called from any thread"""
        loop = self.loop
        if loop is None or loop.is_closed() or not self.clients:
            return
        loop.call_soon_threadsafe(self._schedule, event.to_dict())

    def _schedule(self, payload: dict) -> None:
        asyncio.ensure_future(self.broadcast(payload))

    async def broadcast(self, payload: dict) -> None:
        dead = []
        for websocket in list(self.clients):
            try:
                await websocket.send_json(payload)
            except Exception as e:
                logger.debug(f"Dropping notification client: {e}")
                dead.append(websocket)
        for websocket in dead:
            self.clients.discard(websocket)


def run_discovery(service: CloudService) -> None:
    """Scheduled job: register speakers found on the network"""
    try:
        devices = service.discover_and_register()
        if devices:
            logger.info(f"Discovery registered {len(devices)} new devices")
    except Exception as e:
        logger.error(f"Background discovery failed: {e}")


def create_app(config: Optional[CloudConfig] = None, directory=None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Cloud configuration (defaults to environment)
        directory: Radio directory collaborator, mainly for tests
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan events."""
        # Startup
        cloud_config = config or load_cloud_config()
        service = CloudService(cloud_config, directory=directory)
        hub = NotificationHub()
        hub.bind(asyncio.get_running_loop())
        unsubscribe = service.events.subscribe(hub.on_event)
        app.state.service = service
        app.state.hub = hub

        logger.info("Starting SoundTouch cloud")
        seeds = load_device_seeds(cloud_config.devices_path, cloud_config.default_account)
        service.bootstrap(seed.to_descriptor() for seed in seeds)

        scheduler = None
        if cloud_config.discovery_enabled:
            scheduler = BackgroundScheduler()
            scheduler.add_job(
                run_discovery,
                IntervalTrigger(seconds=cloud_config.discovery_interval_s),
                args=[service],
                id="device_discovery",
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            logger.info(f"Device discovery scheduled every {cloud_config.discovery_interval_s}s")

        logger.info(f"SoundTouch cloud started with {len(service.registry)} devices")

        yield  # Application runs here

        # Shutdown
        if scheduler:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        unsubscribe()
        service.zones.close()
        logger.info("SoundTouch cloud stopped")

    app = FastAPI(title="SoundTouch Cloud", lifespan=lifespan)

    @app.exception_handler(CloudError)
    async def cloud_error_handler(request: Request, exc: CloudError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected: {type(exc).__name__}: {exc}")
        return xml_response(xml_codec.render_error(str(exc)), status_code)

    app.include_router(router)
    app.add_api_websocket_route("/notifications", notifications)
    return app


router = APIRouter()


def get_service(request: Request) -> CloudService:
    return request.app.state.service


async def read_body(request: Request) -> str:
    body = await request.body()
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedInput(f"Request body is not UTF-8: {e}") from e


def account_for(service: CloudService, x_account_id: Optional[str], account_id: Optional[str]) -> str:
    return x_account_id or account_id or service.config.default_account


def device_account(device: Device, account_id: Optional[str]) -> str:
    return account_id or device.account_id


async def notifications(websocket: WebSocket):
    hub: NotificationHub = websocket.app.state.hub
    await hub.connect(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            logger.debug(f"Received from notification client: {message}")
    except WebSocketDisconnect:
        hub.disconnect(websocket)


@router.get("/health")
async def health(service: CloudService = Depends(get_service)):
    return {"status": "healthy", "devices": len(service.registry), "zones": len(service.zones.zones())}


# Control API

@router.get("/info")
def info(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_info(service.device(deviceId)))


@router.get("/name")
def get_name(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_name(service.device(deviceId)))


@router.post("/name")
async def set_name(request: Request, deviceId: Optional[str] = None,
                   service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    name = xml_codec.parse_text_value(await read_body(request), "name")
    await run_in_threadpool(service.registry.set_name, device.id, name)
    logger.info(f"Renamed {device.id} to {name}")
    return ok()


@router.get("/capabilities")
def capabilities(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_capabilities(service.device(deviceId)))


@router.get("/networkInfo")
def network_info(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_network_info(service.device(deviceId)))


@router.get("/presets")
def get_presets(deviceId: Optional[str] = None, accountId: Optional[str] = None,
                service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    presets = service.presets.get_presets(device_account(device, accountId), device.id)
    return xml_response(xml_codec.render_presets(presets))


@router.post("/select")
async def select(request: Request, deviceId: Optional[str] = None,
                 service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    root = xml_codec.parse(await read_body(request), "ContentItem")
    preset_id = root.get("presetId")
    content = xml_codec.parse_content_item(root)
    await run_in_threadpool(service.select, device.id, content, preset_id)
    return ok()


@router.post("/storePreset")
async def store_preset(request: Request, deviceId: Optional[str] = None, presetId: str = "1",
                       accountId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    content = xml_codec.parse_content_item(xml_codec.parse(await read_body(request), "ContentItem"))
    await run_in_threadpool(service.presets.store_preset, device_account(device, accountId), device.id, presetId, content)
    return ok()


@router.post("/removePreset")
def remove_preset(deviceId: Optional[str] = None, presetId: Optional[str] = None,
                  accountId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    if not presetId:
        raise InvalidSlot("Preset ID required")
    service.presets.remove_preset(device_account(device, accountId), device.id, presetId)
    return ok()


@router.post("/removeAllPresets")
def remove_all_presets(deviceId: Optional[str] = None, accountId: Optional[str] = None,
                       service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    service.presets.remove_all_presets(device_account(device, accountId), device.id)
    return ok()


@router.get("/recents")
def recents(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    return xml_response(xml_codec.render_recents(device.recents, device.id))


@router.get("/now_playing")
def now_playing(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    return xml_response(xml_codec.render_now_playing(device.now_playing, device.id))


@router.get("/trackInfo")
def track_info(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    return xml_response(xml_codec.render_track_info(device.now_playing, device.id))


@router.post("/key")
async def key(request: Request, deviceId: Optional[str] = None,
              service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    value, state, sender = xml_codec.parse_key(await read_body(request))
    logger.info(f"Key {value} {state} from {sender}")
    # Speakers send a press and a release for every button
    if state == "release":
        return ok()
    await run_in_threadpool(service.handle_key, device.id, value)
    return ok()


@router.get("/volume")
def get_volume(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_volume(service.device(deviceId)))


@router.post("/volume")
async def set_volume(request: Request, deviceId: Optional[str] = None,
                     service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    volume = xml_codec.parse_int_value(await read_body(request), "volume")
    await run_in_threadpool(service.registry.set_volume, device.id, volume)
    return ok()


@router.get("/bass")
def get_bass(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_bass(service.device(deviceId)))


@router.post("/bass")
async def set_bass(request: Request, deviceId: Optional[str] = None,
                   service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    bass = xml_codec.parse_int_value(await read_body(request), "bass")
    await run_in_threadpool(service.registry.set_bass, device.id, bass)
    return ok()


@router.get("/bassCapabilities")
def bass_capabilities(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    bass_min, bass_max = BASS_RANGE
    return xml_response(xml_codec.render_bass_capabilities(service.device(deviceId), bass_min, bass_max))


@router.get("/balance")
def get_balance(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_balance(service.device(deviceId)))


@router.post("/balance")
async def set_balance(request: Request, deviceId: Optional[str] = None,
                      service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    balance = xml_codec.parse_int_value(await read_body(request), "balance")
    await run_in_threadpool(service.registry.set_balance, device.id, balance)
    return ok()


@router.get("/getZone")
def get_zone(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    zone = service.zones.zone_for(device.id)
    if zone is None:
        return xml_response(xml_codec.render_zone(None, []))
    return xml_response(xml_codec.render_zone(zone.master, service.zones.members(zone.master)))


@router.post("/setZone")
async def set_zone(request: Request, deviceId: Optional[str] = None,
                   service: CloudService = Depends(get_service)):
    await run_in_threadpool(service.set_zone, deviceId, await read_body(request))
    return ok()


@router.post("/removeZone")
def remove_zone(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    service.zones.remove_zone(device.id)
    return ok()


@router.post("/addZoneSlave")
async def add_zone_slave(request: Request, deviceId: Optional[str] = None,
                         service: CloudService = Depends(get_service)):
    await run_in_threadpool(service.change_zone_slave, deviceId, await read_body(request), True)
    return ok()


@router.post("/removeZoneSlave")
async def remove_zone_slave(request: Request, deviceId: Optional[str] = None,
                            service: CloudService = Depends(get_service)):
    await run_in_threadpool(service.change_zone_slave, deviceId, await read_body(request), False)
    return ok()


@router.get("/getGroup")
def get_group(deviceId: Optional[str] = None, service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_group(service.device(deviceId)))


@router.post("/setGroup")
async def set_group(request: Request, deviceId: Optional[str] = None,
                    service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    xml_codec.parse(await read_body(request), "group")
    logger.info(f"Group configuration updated for {device.id}")
    return ok()


@router.get("/sources")
def sources(deviceId: Optional[str] = None, accountId: Optional[str] = None,
            service: CloudService = Depends(get_service)):
    device = service.device(deviceId)
    stored = service.stored_record(RecordKind.SOURCES, device_account(device, accountId), device.id)
    return xml_response(stored or xml_codec.render_sources(device.id))


@router.get("/listMediaServers")
def list_media_servers(service: CloudService = Depends(get_service)):
    return xml_response(xml_codec.render_media_servers())


# Cloud replacement API

@router.post("/device/register")
async def register_device(request: Request, accountId: Optional[str] = None,
                          x_account_id: Optional[str] = Header(None),
                          service: CloudService = Depends(get_service)):
    account = account_for(service, x_account_id, accountId)
    client_host = request.client.host if request.client else ""
    await run_in_threadpool(service.register_from_device_info, account, await read_body(request), client_host)
    return ok()


@router.get("/device/{device_id}/config")
def device_config(device_id: str, accountId: Optional[str] = None,
                  x_account_id: Optional[str] = Header(None),
                  service: CloudService = Depends(get_service)):
    logger.info(f"Config request from device: {device_id}")
    stored = service.stored_record(RecordKind.DEVICE_INFO, account_for(service, x_account_id, accountId), device_id)
    if stored is None:
        raise DeviceNotFound(f"No stored configuration for {device_id}")
    return xml_response(stored)


@router.delete("/device/{device_id}")
def unregister_device(device_id: str, service: CloudService = Depends(get_service)):
    service.unregister_device(device_id)
    return ok()


@router.post("/device/{device_id}/presets")
async def sync_presets(device_id: str, request: Request, accountId: Optional[str] = None,
                       x_account_id: Optional[str] = Header(None),
                       service: CloudService = Depends(get_service)):
    document = await read_body(request)
    await run_in_threadpool(service.sync_presets, account_for(service, x_account_id, accountId), device_id, document)
    return ok()


@router.get("/device/{device_id}/presets")
def stored_presets(device_id: str, accountId: Optional[str] = None,
                   x_account_id: Optional[str] = Header(None),
                   service: CloudService = Depends(get_service)):
    stored = service.stored_record(RecordKind.PRESETS, account_for(service, x_account_id, accountId), device_id)
    return xml_response(stored or xml_codec.render_presets([]))


@router.post("/device/{device_id}/recents")
async def sync_recents(device_id: str, request: Request, accountId: Optional[str] = None,
                       x_account_id: Optional[str] = Header(None),
                       service: CloudService = Depends(get_service)):
    document = await read_body(request)
    await run_in_threadpool(service.sync_record, RecordKind.RECENTS, account_for(service, x_account_id, accountId),
                            device_id, document, "recents")
    return ok()


@router.get("/device/{device_id}/recents")
def stored_recents(device_id: str, accountId: Optional[str] = None,
                   x_account_id: Optional[str] = Header(None),
                   service: CloudService = Depends(get_service)):
    stored = service.stored_record(RecordKind.RECENTS, account_for(service, x_account_id, accountId), device_id)
    return xml_response(stored or xml_codec.render_recents([], device_id))


@router.post("/device/{device_id}/sources")
async def sync_sources(device_id: str, request: Request, accountId: Optional[str] = None,
                       x_account_id: Optional[str] = Header(None),
                       service: CloudService = Depends(get_service)):
    document = await read_body(request)
    await run_in_threadpool(service.sync_record, RecordKind.SOURCES, account_for(service, x_account_id, accountId),
                            device_id, document, "sources")
    return ok()


@router.get("/device/{device_id}/sources")
def stored_sources(device_id: str, accountId: Optional[str] = None,
                   x_account_id: Optional[str] = Header(None),
                   service: CloudService = Depends(get_service)):
    stored = service.stored_record(RecordKind.SOURCES, account_for(service, x_account_id, accountId), device_id)
    return xml_response(stored or xml_codec.render_sources(device_id))


@router.get("/account/{account_id}/devices")
def account_devices(account_id: str, service: CloudService = Depends(get_service)):
    return JSONResponse({"accountId": account_id, "devices": service.list_account_devices(account_id)})


# Radio directory API

@router.get("/tunein/search")
def tunein_search(query: Optional[str] = None, q: Optional[str] = None,
                  service: CloudService = Depends(get_service)):
    query = query or q
    if not query:
        raise MalformedInput("Search query required")
    logger.info(f"TuneIn search: {query}")
    return Response(content=service.directory.search(query), media_type="text/xml")


@router.get("/tunein/station/{station_id}")
def tunein_station(station_id: str, service: CloudService = Depends(get_service)):
    logger.info(f"TuneIn station request: {station_id}")
    name = f"TuneIn Station {station_id}"
    content = ContentReference(source=Source.INTERNET_RADIO.value, station_id=station_id, name=name)
    resolved = service.resolve(content)
    return xml_response(xml_codec.render_content_item(resolved))


@router.get("/tunein/browse")
def tunein_browse(c: str = "local", service: CloudService = Depends(get_service)):
    logger.info(f"TuneIn browse: {c}")
    return Response(content=service.directory.browse(c), media_type="text/xml")


@router.post("/bmx/resolve")
async def bmx_resolve(request: Request, service: CloudService = Depends(get_service)):
    content = xml_codec.parse_content_item(xml_codec.parse(await read_body(request), "ContentItem"))
    logger.info(f"BMX resolve: source={content.source}, location={content.location}, stationId={content.station_id}")
    resolved = await run_in_threadpool(service.resolve, content)
    return xml_response(xml_codec.render_content_item(resolved))


@router.get("/bmx/presets/{device_id}")
def bmx_presets(device_id: str, accountId: Optional[str] = None,
                x_account_id: Optional[str] = Header(None),
                service: CloudService = Depends(get_service)):
    presets = service.radio_presets(account_for(service, x_account_id, accountId), device_id)
    return xml_response(xml_codec.render_presets(presets))


app = create_app()


if __name__ == "__main__":
    import uvicorn

    cloud_config = load_cloud_config()
    logger.info(f"Starting SoundTouch cloud on {cloud_config.host}:{cloud_config.port}")
    uvicorn.run(
        app,
        host=cloud_config.host,
        port=cloud_config.port,
        log_level="info",
        access_log=False
    )
