import json
from typing import Callable

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .arcade import Arcade
from .errors import SubmissionPrecondition
from .models import GameFrame, InputEvent, LeaderboardPage, ScoreSubmissionView


def create_app(arcade_factory: Callable[[], Arcade] = Arcade) -> FastAPI:
    app = FastAPI(
        title="Snake On-Chain API",
        version="1.0.0",
        description="Plays snake on the server, submits final scores to the ledger and serves the on-chain leaderboard.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event() -> None:
        app.state.arcade = arcade_factory()
        await app.state.arcade.open()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await app.state.arcade.close()

    async def get_arcade() -> Arcade:
        return app.state.arcade

    @app.post("/game/start", response_model=GameFrame)
    async def start_game(arcade: Arcade = Depends(get_arcade)) -> GameFrame:
        return arcade.start()

    @app.post("/game/pause", response_model=GameFrame)
    async def pause_game(arcade: Arcade = Depends(get_arcade)) -> GameFrame:
        arcade.toggle_pause()
        return arcade.engine.snapshot()

    @app.post("/game/input", response_model=GameFrame)
    async def game_input(event: InputEvent, arcade: Arcade = Depends(get_arcade)) -> GameFrame:
        if event.key is not None:
            arcade.press(event.key)
        elif event.dx is not None and event.dy is not None:
            arcade.swipe(event.dx, event.dy)
        else:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Provide a key or a swipe vector")
        return arcade.engine.snapshot()

    @app.get("/game", response_model=GameFrame)
    async def current_game(arcade: Arcade = Depends(get_arcade)) -> GameFrame:
        return arcade.engine.snapshot()

    async def _frame_stream(arcade: Arcade):
        async for frame in arcade.frames():
            payload = json.dumps(frame.model_dump())
            yield "event: frame\n"
            yield f"data: {payload}\n\n"

    @app.get("/game/stream")
    async def stream_game(arcade: Arcade = Depends(get_arcade)):
        return StreamingResponse(_frame_stream(arcade), media_type="text/event-stream")

    @app.post("/scores", response_model=ScoreSubmissionView)
    async def submit_score(arcade: Arcade = Depends(get_arcade)) -> ScoreSubmissionView:
        try:
            submission = await arcade.submit_score()
        except SubmissionPrecondition as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return submission.view()

    @app.get("/scores/current", response_model=ScoreSubmissionView)
    async def current_submission(arcade: Arcade = Depends(get_arcade)) -> ScoreSubmissionView:
        submission = arcade.submitter.current
        if submission is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No submission for this game")
        return submission.view()

    @app.get("/leaderboard", response_model=LeaderboardPage)
    async def get_leaderboard(page: int = Query(1), arcade: Arcade = Depends(get_arcade)) -> LeaderboardPage:
        return arcade.leaderboard.page(page)

    @app.post("/leaderboard/refresh", response_model=LeaderboardPage)
    async def refresh_leaderboard(arcade: Arcade = Depends(get_arcade)) -> LeaderboardPage:
        await arcade.leaderboard.refresh()
        return arcade.leaderboard.page()

    return app


app = create_app()
