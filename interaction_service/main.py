"""
FastAPI application for Interaction Service
"""
from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import logging

from .config import settings
from .cache import cache
from .kafka_producer import kafka_producer
from .kafka_consumer import KafkaConsumerManager
from .exceptions import InteractionError
from .application import HotPostScheduler, HotPostService, InteractionService, SearchSyncService
from .domain.models import CommentView, PostView, TargetKind, utcnow
from .infrastructure.database import mongodb
from .infrastructure.search import search_index
from .dependencies import (
    get_current_user,
    get_hot_post_service,
    get_interaction_service,
    get_search_sync,
    hot_post_service,
    search_sync,
)
from .schemas import (
    CommentCreate,
    CommentResponse,
    CurrentUser,
    EventListResponse,
    EventResponse,
    HotPostResponse,
    HotPostsResponse,
    LikeResponse,
    MessageResponse,
    PostCreate,
    PostListResponse,
    PostResponse,
    PostUpdate,
    PostUpdateResponse,
    SearchResponse,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

kafka_consumer = KafkaConsumerManager(search_sync)
hot_post_scheduler = HotPostScheduler(hot_post_service)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Interaction Service...")

    if settings.STORE_BACKEND == "mongodb":
        await mongodb.connect()
        logger.info("Database connected")

    await cache.connect()
    logger.info("Redis cache initialized")

    await kafka_producer.start()
    logger.info("Kafka producer started")

    # Search is a derived view; requests are served while it bootstraps
    await search_index.connect()
    bootstrap_task = asyncio.create_task(search_sync.bootstrap())

    await kafka_consumer.start()
    logger.info("Kafka consumer started")

    if settings.HOT_POSTS_SCHEDULER_ENABLED:
        await hot_post_scheduler.start()

    logger.info(f"Interaction Service started successfully on port {settings.PORT}")

    yield

    # Shutdown
    logger.info("Shutting down Interaction Service...")

    await hot_post_scheduler.stop()
    await hot_post_service.close()

    if not bootstrap_task.done():
        bootstrap_task.cancel()
        try:
            await bootstrap_task
        except asyncio.CancelledError:
            pass

    await kafka_consumer.stop()
    await kafka_producer.stop()
    await search_index.close()
    await cache.disconnect()

    if settings.STORE_BACKEND == "mongodb":
        await mongodb.disconnect()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Posts, likes, comments, notifications, search sync and hot posts",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InteractionError)
async def interaction_exception_handler(request: Request, exc: InteractionError):
    if exc.status >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status,
        content={"code": exc.code, "message": exc.message},
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "search": search_sync.status(),
        "timestamp": utcnow().isoformat()
    }


# Posts

@app.get("/api/v1/posts", response_model=PostListResponse, tags=["Posts"])
async def list_posts(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: InteractionService = Depends(get_interaction_service)
):
    """
    Get posts newest first with authors and comments

    - **page**: Page number (default: 1)
    - **page_size**: Items per page
    """
    result = await service.list_posts(page, page_size)
    skip = (page - 1) * page_size

    return PostListResponse(
        posts=[PostResponse.from_view(view) for view in result.posts],
        total=result.total,
        page=page,
        page_size=page_size,
        has_more=(skip + len(result.posts)) < result.total
    )


@app.get("/api/v1/posts/hot", response_model=HotPostsResponse, tags=["Posts"])
async def get_hot_posts(service: HotPostService = Depends(get_hot_post_service)):
    """
    Get the cached hot posts

    Returns an empty list while the snapshot is being rebuilt.
    """
    hot_posts = await service.get_hot_posts()
    return HotPostsResponse(
        posts=[HotPostResponse.from_hot_post(hot) for hot in hot_posts],
        count=len(hot_posts)
    )


@app.get("/api/v1/posts/{post_id}", response_model=PostResponse, tags=["Posts"])
async def get_post(
    post_id: str,
    service: InteractionService = Depends(get_interaction_service)
):
    """Get post by ID with author and comments"""
    view = await service.get_post(post_id)
    return PostResponse.from_view(view)


@app.post("/api/v1/posts", response_model=PostResponse, status_code=status.HTTP_201_CREATED, tags=["Posts"])
async def create_post(
    post_data: PostCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """
    Create a new post

    - **content**: Post text (max 280 characters)
    - Requires authentication
    """
    post = await service.create_post(current_user.id, post_data.content)
    author = await service.get_author(current_user.id)
    return PostResponse.from_view(PostView(post=post, author=author))


@app.put("/api/v1/posts/{post_id}", response_model=PostUpdateResponse, tags=["Posts"])
async def update_post(
    post_id: str,
    post_data: PostUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """
    Update post content

    - Requires authentication
    - Only post owner can update
    """
    content = await service.update_post(post_id, current_user.id, post_data.content)
    return PostUpdateResponse(id=post_id, content=content)


@app.delete("/api/v1/posts/{post_id}", response_model=MessageResponse, tags=["Posts"])
async def delete_post(
    post_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """
    Delete post with its comments, likes and notifications

    - Requires authentication
    - Only post owner can delete
    """
    await service.delete_post(post_id, current_user.id)
    return MessageResponse(message="Post deleted successfully")


# Interactions

@app.post("/api/v1/posts/{post_id}/like", response_model=LikeResponse, tags=["Interactions"])
async def like_post(
    post_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """Like a post; liking twice reports no_state_change"""
    outcome = await service.like_post(post_id, current_user.id)
    return LikeResponse(target_id=post_id, target_kind=TargetKind.POST, outcome=outcome)


@app.delete("/api/v1/posts/{post_id}/like", response_model=LikeResponse, tags=["Interactions"])
async def unlike_post(
    post_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """Unlike a post"""
    outcome = await service.unlike_post(post_id, current_user.id)
    return LikeResponse(target_id=post_id, target_kind=TargetKind.POST, outcome=outcome)


@app.post(
    "/api/v1/posts/{post_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Interactions"]
)
async def add_comment(
    post_id: str,
    comment_data: CommentCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """
    Comment on a post

    - **content**: Comment text (max 280 characters)
    - Requires authentication
    """
    comment = await service.add_comment(post_id, current_user.id, comment_data.content)
    author = await service.get_author(current_user.id)
    return CommentResponse.from_view(CommentView(comment=comment, author=author))


@app.post("/api/v1/comments/{comment_id}/like", response_model=LikeResponse, tags=["Interactions"])
async def like_comment(
    comment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """Like a comment"""
    outcome = await service.like_comment(comment_id, current_user.id)
    return LikeResponse(target_id=comment_id, target_kind=TargetKind.COMMENT, outcome=outcome)


@app.delete("/api/v1/comments/{comment_id}/like", response_model=LikeResponse, tags=["Interactions"])
async def unlike_comment(
    comment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """Unlike a comment"""
    outcome = await service.unlike_comment(comment_id, current_user.id)
    return LikeResponse(target_id=comment_id, target_kind=TargetKind.COMMENT, outcome=outcome)


@app.get("/api/v1/notifications", response_model=EventListResponse, tags=["Interactions"])
async def list_notifications(
    limit: int = Query(50, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(get_current_user),
    service: InteractionService = Depends(get_interaction_service)
):
    """Notifications addressed to the current user, newest first"""
    events = await service.list_events(current_user.id, limit)
    return EventListResponse(events=[EventResponse.from_event(event) for event in events])


# Search

@app.get("/api/v1/search/posts", response_model=SearchResponse, tags=["Search"])
async def search_posts(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sync: SearchSyncService = Depends(get_search_sync)
):
    """Keyword search over posts; 503 while search is degraded"""
    result = await sync.search_posts(q, page, page_size)
    return SearchResponse.from_page(result)


@app.get("/api/v1/search/users", response_model=SearchResponse, tags=["Search"])
async def search_users(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    sync: SearchSyncService = Depends(get_search_sync)
):
    """Keyword search over users; 503 while search is degraded"""
    result = await sync.search_users(q, page, page_size)
    return SearchResponse.from_page(result)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "interaction_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
