# Area: Engine
"""
epyc_engine.simulation — Season Simulation
==========================================

Plays a whole season against a throwaway database: every player claims
whatever is offered and submits immediately, and when nobody can move
the manual clock jumps to the next scheduled job. Afterwards the run is
checked for the rotation properties a finished season must have.
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ._engine.config import SeasonConfig, build_config
from ._engine.enums import SeasonStatus, TurnStatus, TurnType
from ._engine.gateways import InMemoryScheduler, RecordingNotifier
from ._engine.models import Player, Turn, TurnContent
from ._shared.clock import ManualClock
from ._shared.resilience import RetryPolicy
from ._store import Store
from .engine import EpycEngine

logger = logging.getLogger("epyc_engine.simulation")

SIMULATION_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


@dataclass
class SimulationReport:
    season_id: str
    season_status: SeasonStatus
    player_names: Dict[str, str]
    chains: Dict[str, List[str]] = field(default_factory=dict)
    steps: int = 0
    jobs_fired: int = 0
    violations: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations

    def format_chains(self) -> List[str]:
        lines = []
        for index, (game_id, chain) in enumerate(self.chains.items(), start=1):
            names = " -> ".join(self.player_names.get(pid, pid) for pid in chain)
            lines.append(f"game {index} ({game_id[:8]}): {names}")
        return lines


def _content_for(turn: Turn, player: Player) -> TurnContent:
    if turn.type == TurnType.WRITING:
        return TurnContent.of_text(f"turn {turn.turn_number} by {player.name}")
    return TurnContent.of_image(f"https://img.invalid/{turn.id}.png")


def run_simulation(
    players: int,
    pattern: str = "writing,drawing",
    db_path: Optional[str] = None,
    max_steps: Optional[int] = None,
) -> SimulationReport:
    """
    Run one season with ``players`` members and turn pattern ``pattern``.

    A temporary database is created (and removed afterwards) unless
    ``db_path`` is given.

    Raises:
        ConfigValidationError: If the pattern or roster size is invalid
    """
    config = build_config(
        SeasonConfig, {"turn_pattern": pattern, "min_players": players, "max_players": players}
    )
    owned_db = db_path is None
    if owned_db:
        fd, db_path = tempfile.mkstemp(suffix=".db", prefix="epyc-sim-")
        os.close(fd)
    try:
        clock = ManualClock(SIMULATION_START)
        engine = EpycEngine(
            Store.open(db_path),
            scheduler=InMemoryScheduler(clock),
            notifier=RecordingNotifier(),
            retry=RetryPolicy(sleep=lambda _: None),
            clock=clock,
        )
        return _play(engine, clock, config, players, max_steps or 50 * players * players)
    finally:
        if owned_db:
            os.unlink(db_path)


def _play(
    engine: EpycEngine, clock: ManualClock, config: SeasonConfig, count: int, max_steps: int
) -> SimulationReport:
    roster = [engine.register_player(f"sim:{i}", f"player{i}") for i in range(1, count + 1)]
    by_id = {p.id: p for p in roster}
    season = engine.create_season(creator_id=roster[0].id, config=config).unwrap()
    for player in roster:
        engine.join_season(season.id, player.id)

    report = SimulationReport(
        season_id=season.id,
        season_status=season.status,
        player_names={p.id: p.name for p in roster},
    )
    while report.steps < max_steps:
        report.steps += 1
        moved = False
        for player in roster:
            open_turns = engine.store.turns.list_open_for_season(season.id)
            pending = [t for t in open_turns
                       if t.player_id == player.id and t.status == TurnStatus.PENDING]
            if len(pending) > 1:
                report.violations.append(f"{player.name} holds {len(pending)} pending turns")
            if pending:
                turn = pending[0]
                engine.submit_turn(turn.id, player.id, _content_for(turn, player)).unwrap()
                moved = True
            elif engine.claim_next_offered(player.id).ok:
                moved = True
        if moved:
            continue
        if engine.store.seasons.get(season.id).status != SeasonStatus.ACTIVE:
            break
        next_fire = engine.scheduler.next_fire_time()
        if next_fire is None:
            report.violations.append("season stalled with no scheduled jobs")
            break
        clock.now = next_fire
        report.jobs_fired += engine.run_due_jobs()
    else:
        report.violations.append(f"season unfinished after {max_steps} steps")

    _check(engine, report, config, by_id)
    return report


def _check(
    engine: EpycEngine, report: SimulationReport, config: SeasonConfig, by_id: Dict[str, Player]
) -> None:
    season = engine.store.seasons.get(report.season_id)
    report.season_status = season.status
    if season.status != SeasonStatus.COMPLETED:
        report.violations.append(f"season ended {season.status.value}")

    roster = set(by_id)
    games = engine.season_games(report.season_id)
    if len(games) != len(roster):
        report.violations.append(f"{len(games)} games for {len(roster)} players")
    starters = set()
    for game in games:
        turns = engine.game_turns(game.id)
        chain = [t.player_id for t in turns if t.is_resolved]
        report.chains[game.id] = chain
        if turns:
            starters.add(turns[0].player_id)
        if len(chain) != len(set(chain)):
            report.violations.append(f"game {game.id} repeats a player")
        if set(chain) != roster:
            report.violations.append(f"game {game.id} does not cover the roster")
        for turn in turns:
            if turn.type != config.type_for_turn(turn.turn_number):
                report.violations.append(
                    f"game {game.id} turn {turn.turn_number} is {turn.type.value}"
                )
    if starters != roster:
        report.violations.append("not every player started exactly one game")

    for line in report.violations:
        logger.warning("Simulation property failed: %s", line)
