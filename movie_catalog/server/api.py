"""FastAPI application serving the movie catalog pages and its JSON API."""

from __future__ import annotations

import asyncio
import functools
import logging
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiofiles
from fastapi import (
    Body,
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from movie_catalog.catalog import MovieCatalog
from movie_catalog.categories import CategorySet
from movie_catalog.channel_index import CollectionIndex
from movie_catalog.config import CatalogConfig
from movie_catalog.errors import CatalogError, NotFound
from movie_catalog.pages import (
    render_error_page,
    render_homepage,
    render_movie_page,
    render_not_found_page,
)
from movie_catalog.paginated import CollectionWriter
from movie_catalog.records import utcnow
from movie_catalog.scraper import MovieScraper, extract_movie_data
from movie_catalog.sitemap import build_categories_sitemap, build_sitemap, build_sitemap_page
from movie_catalog.store import GitHubFileStore, KeyedObjectStore
from movie_catalog.upload import BunnyUploader, StagedFile, upload_record

logger = logging.getLogger(__name__)

CHANNELS_ROOT = "channels"
CHANNEL_INDEX_PATH = "channels/index.json"
HTML_CACHE = "public, max-age=7200, s-maxage=14400"
MOVIE_CACHE = "public, max-age=3600"
SEARCH_CACHE = "public, max-age=300"
SITEMAP_CACHE = "public, max-age=86400"


class ScrapeRequest(BaseModel):
    url: str = Field(..., description="Page to fetch and extract movie metadata from.")


class ProcessHtmlRequest(BaseModel):
    html: str = Field(..., description="Raw HTML document to extract metadata from.")
    url: Optional[str] = Field(None, description="Original page URL, used to resolve relative links.")


class AddToChannelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    channel_name: str = Field(..., alias="channelName", description="Human-readable channel name.")
    video_data: Dict[str, Any] = Field(..., alias="videoData", description="Video attributes to append.")
    idempotency_key: Optional[str] = Field(
        None, alias="idempotencyKey", description="Caller key that makes retries safe."
    )


class CreateMarkdownRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName")
    channel_name: str = Field(..., alias="channelName")
    content: Optional[str] = None


class SaveCategoriesRequest(BaseModel):
    categories: List[Any] = Field(..., description="Replacement category list.")


async def _run_blocking(func: Callable, *args: Any, **kwargs: Any) -> Any:
    """Run a blocking store/CDN call without stalling the event loop."""

    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


def _wants_html(request: Request) -> bool:
    path = request.url.path
    return request.method == "GET" and not path.startswith("/api") and not path.endswith(".xml")


def _movie_summary(record) -> dict:
    return {
        "title": record.title,
        "category": record.category,
        "slug": record.slug,
        "description": record.description,
        "tags": record.tags,
        "url": f"/{record.category}/{record.slug}",
    }


def create_app(
    config: Optional[CatalogConfig] = None,
    *,
    store: Optional[KeyedObjectStore] = None,
    uploader: Optional[BunnyUploader] = None,
    scraper: Optional[MovieScraper] = None,
    clock: Callable = utcnow,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``config`` is resolved from the environment when omitted. Adapters are
    created lazily so missing credentials only fail the endpoints that need
    them.
    """

    config = config or CatalogConfig.from_env()
    app = FastAPI(title="Movie Catalog", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    adapters: Dict[str, Any] = {"store": store, "uploader": uploader, "scraper": scraper}

    # Error handling -------------------------------------------------
    @app.exception_handler(CatalogError)
    async def catalog_error(request: Request, exc: CatalogError) -> Response:
        if isinstance(exc, NotFound):
            logger.info("Not found on %s: %s", request.url.path, exc)
        else:
            logger.error("Request to %s failed", request.url.path, exc_info=exc)
        if _wants_html(request):
            page = render_not_found_page if isinstance(exc, NotFound) else render_error_page
            return HTMLResponse(page(config.site_name), status_code=exc.status_code)
        return JSONResponse({"success": False, "error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> Response:
        if _wants_html(request):
            page = render_not_found_page if exc.status_code == 404 else render_error_page
            return HTMLResponse(page(config.site_name), status_code=exc.status_code)
        return JSONResponse({"success": False, "error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> Response:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
            for error in exc.errors()
        )
        return JSONResponse(
            {"success": False, "error": f"Invalid request: {problems}"}, status_code=400
        )

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> Response:
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        if _wants_html(request):
            return HTMLResponse(render_error_page(config.site_name), status_code=500)
        return JSONResponse({"success": False, "error": "Internal server error"}, status_code=500)

    # Dependencies ---------------------------------------------------
    def get_store() -> KeyedObjectStore:
        if adapters["store"] is None:
            adapters["store"] = GitHubFileStore(config)
        return adapters["store"]

    def get_catalog(store: KeyedObjectStore = Depends(get_store)) -> MovieCatalog:
        return MovieCatalog(store, config, clock=clock)

    def get_channels(store: KeyedObjectStore = Depends(get_store)) -> CollectionWriter:
        index = CollectionIndex(
            store,
            CHANNEL_INDEX_PATH,
            attempts=config.conflict_retries,
            describe=lambda name: f"{name} - {config.site_name}",
            clock=clock,
        )
        return CollectionWriter(
            store,
            index,
            root=CHANNELS_ROOT,
            capacity=config.collection_capacity,
            attempts=config.conflict_retries,
            clock=clock,
        )

    def get_category_set(store: KeyedObjectStore = Depends(get_store)) -> CategorySet:
        return CategorySet(store, clock=clock)

    def get_uploader() -> BunnyUploader:
        if adapters["uploader"] is None:
            config.require_bunny()
            adapters["uploader"] = BunnyUploader(config)
        return adapters["uploader"]

    def get_scraper() -> MovieScraper:
        if adapters["scraper"] is None:
            adapters["scraper"] = MovieScraper(timeout=config.http_timeout)
        return adapters["scraper"]

    # API routes -----------------------------------------------------
    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/scrape")
    async def scrape(
        payload: ScrapeRequest = Body(...),
        movie_scraper: MovieScraper = Depends(get_scraper),
    ) -> dict:
        url = payload.url.strip()
        if not url.startswith(("http://", "https://")):
            raise HTTPException(status_code=400, detail="A valid http(s) URL is required.")
        movie_data, sources = await _run_blocking(movie_scraper.scrape, url)
        return {"success": True, "movieData": movie_data, "extractedFrom": sources}

    @app.post("/api/process-html")
    async def process_html(payload: ProcessHtmlRequest = Body(...)) -> dict:
        if not payload.html.strip():
            raise HTTPException(status_code=400, detail="HTML content cannot be empty.")
        movie_data, sources = extract_movie_data(payload.html, payload.url)
        return {"success": True, "movieData": movie_data, "extractedFrom": sources}

    @app.post("/api/save-movie")
    @app.post("/api/upload-movie")
    async def save_movie(
        payload: Dict[str, Any] = Body(...),
        catalog: MovieCatalog = Depends(get_catalog),
    ) -> dict:
        movie_data = payload.get("movieData", payload)
        if not isinstance(movie_data, dict):
            raise HTTPException(status_code=400, detail="movieData must be an object.")
        try:
            result = await _run_blocking(catalog.save_movie, movie_data)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "success": True,
            "message": "Movie saved successfully",
            "filePath": result.file_path,
            "slug": result.record.slug,
            "videoCount": result.collection.video_count,
            "collectionFile": result.collection.file_path,
            "githubUrl": result.html_url,
            "viewUrl": result.view_url,
        }

    @app.post("/api/add-to-channel")
    @app.post("/api/add-to-channel-json")
    async def add_to_channel(
        payload: AddToChannelRequest = Body(...),
        idempotency_header: Optional[str] = Header(None, alias="Idempotency-Key"),
        channels: CollectionWriter = Depends(get_channels),
    ) -> dict:
        if not payload.channel_name.strip():
            raise HTTPException(status_code=400, detail="channelName and videoData are required.")
        try:
            result = await _run_blocking(
                channels.append,
                payload.channel_name.strip(),
                payload.video_data,
                idempotency_key=payload.idempotency_key or idempotency_header,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "success": True,
            "message": "Video already in channel" if result.duplicate else "Video added to channel JSON",
            "channelSlug": result.collection_slug,
            "jsonFile": result.file_path,
            "videoCount": result.video_count,
            "nextFile": result.next_file,
            "githubUrl": result.html_url,
            "videoAdded": result.record.to_document(),
            "duplicate": result.duplicate,
        }

    @app.get("/api/channels")
    async def list_channels(channels: CollectionWriter = Depends(get_channels)) -> dict:
        document = await _run_blocking(channels.index.load)
        return {"success": True, **document.to_document()}

    @app.post("/api/create-md")
    async def create_markdown(
        payload: CreateMarkdownRequest = Body(...),
        catalog: MovieCatalog = Depends(get_catalog),
    ) -> dict:
        try:
            written = await _run_blocking(
                catalog.create_markdown, payload.file_name, payload.channel_name, payload.content
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "success": True,
            "message": "MD file created successfully",
            "filePath": written.path,
            "githubUrl": written.html_url,
            "sha": written.sha,
        }

    @app.get("/api/get-categories")
    async def get_categories(category_set: CategorySet = Depends(get_category_set)) -> dict:
        categories = await _run_blocking(category_set.load)
        return {"success": True, "categories": categories}

    @app.post("/api/save-categories")
    async def save_categories(
        payload: SaveCategoriesRequest = Body(...),
        category_set: CategorySet = Depends(get_category_set),
    ) -> dict:
        try:
            categories = await _run_blocking(category_set.save, payload.categories)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "message": "Categories saved successfully", "categories": categories}

    @app.get("/api/search")
    async def search(
        q: str = Query("", description="Substring to look for."),
        catalog: MovieCatalog = Depends(get_catalog),
    ) -> Response:
        records = await _run_blocking(catalog.search, q) if len(q.strip()) >= 2 else []
        return JSONResponse(
            [_movie_summary(record) for record in records],
            headers={"Cache-Control": SEARCH_CACHE},
        )

    @app.get("/api/search-index")
    async def search_index(catalog: MovieCatalog = Depends(get_catalog)) -> Response:
        entries = await _run_blocking(catalog.search_index)
        return JSONResponse(entries, headers={"Cache-Control": "public, max-age=3600"})

    # Uploads --------------------------------------------------------
    async def _stage_upload(upload: UploadFile, directory: Path, name: str) -> StagedFile:
        destination = directory / name
        async with aiofiles.open(destination, "wb") as out_file:
            while chunk := await upload.read(1024 * 1024):
                await out_file.write(chunk)
        return StagedFile(path=destination, filename=upload.filename, content_type=upload.content_type)

    @app.post("/upload")
    async def upload(
        title: str = Form(..., description="Title used to derive storage keys."),
        video: UploadFile = File(...),
        thumbnail: UploadFile = File(...),
        category: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        language: Optional[str] = Form(None),
        quality: Optional[str] = Form(None),
        release_year: Optional[str] = Form(None, alias="releaseYear"),
        duration: Optional[str] = Form(None),
        cdn: BunnyUploader = Depends(get_uploader),
    ) -> dict:
        if not title.strip():
            raise HTTPException(status_code=400, detail="Title cannot be empty.")
        if release_year and not release_year.strip().isdecimal():
            raise HTTPException(status_code=400, detail="releaseYear must be a whole number.")

        with tempfile.TemporaryDirectory(prefix="movie-upload-") as workdir:
            staged_video = await _stage_upload(video, Path(workdir), "video")
            staged_thumbnail = await _stage_upload(thumbnail, Path(workdir), "thumbnail")
            try:
                result = await _run_blocking(cdn.relay, title.strip(), staged_video, staged_thumbnail)
            finally:
                for staged in (staged_video, staged_thumbnail):
                    with suppress(FileNotFoundError, PermissionError):
                        staged.path.unlink()

        record, markdown = upload_record(
            result,
            title,
            {
                "category": category,
                "description": description,
                "language": language,
                "quality": quality,
                "releaseYear": release_year,
                "duration": duration,
            },
            clock(),
        )
        return {
            "success": True,
            "videoUrl": result.video_url,
            "thumbnailUrl": result.thumbnail_url,
            "markdown": markdown,
            "details": {
                "title": record.title,
                "category": record.category,
                "slug": result.slug,
                "videoFileName": result.video_key,
                "thumbnailFileName": result.thumbnail_key,
            },
        }

    # Sitemaps -------------------------------------------------------
    def _xml(content: str) -> Response:
        return Response(
            content,
            media_type="application/xml; charset=utf-8",
            headers={"Cache-Control": SITEMAP_CACHE},
        )

    @app.get("/sitemap.xml")
    async def sitemap(catalog: MovieCatalog = Depends(get_catalog)) -> Response:
        records = await _run_blocking(catalog.load_all)
        return _xml(build_sitemap(records, config.site_url, clock().date(), config.sitemap_page_size))

    @app.get("/sitemap-categories.xml")
    async def sitemap_categories(catalog: MovieCatalog = Depends(get_catalog)) -> Response:
        records = await _run_blocking(catalog.load_all)
        return _xml(build_categories_sitemap(records, config.site_url, clock().date()))

    @app.get("/sitemap-{number:int}.xml")
    async def sitemap_page(number: int, catalog: MovieCatalog = Depends(get_catalog)) -> Response:
        records = await _run_blocking(catalog.load_all)
        try:
            content = build_sitemap_page(
                records, number, config.site_url, clock().date(), config.sitemap_page_size
            )
        except NotFound:
            return Response("Sitemap not found", status_code=404, media_type="text/plain")
        return _xml(content)

    # Pages ----------------------------------------------------------
    @app.get("/", response_class=HTMLResponse)
    async def homepage(
        search: str = Query("", description="Free-text filter."),
        category: str = Query("", description="Category filter."),
        catalog: MovieCatalog = Depends(get_catalog),
    ) -> Response:
        records = await _run_blocking(catalog.load_all)
        page = render_homepage(
            records,
            base_url=config.site_url,
            site_name=config.site_name,
            now=clock(),
            search_query=search.strip(),
            category_filter=category.strip(),
        )
        return HTMLResponse(page, headers={"Cache-Control": HTML_CACHE})

    @app.get("/{category}/{slug}", response_class=HTMLResponse)
    async def movie_page(
        category: str,
        slug: str,
        catalog: MovieCatalog = Depends(get_catalog),
    ) -> Response:
        if category == "api":
            raise NotFound(f"No page at /{category}/{slug}")
        record = await _run_blocking(catalog.get_movie, category, slug)
        others = await _run_blocking(catalog.related, category, slug, 12)
        page = render_movie_page(
            record,
            others[:2],
            others[2:12],
            base_url=config.site_url,
            site_name=config.site_name,
            now=clock(),
        )
        return HTMLResponse(page, headers={"Cache-Control": MOVIE_CACHE})

    return app
