import asyncio
import signal

from channels.layers import get_channel_layer
from django.conf import settings
from django.core.management.base import BaseCommand

from chain.client import CrashGameChain
from chain.entropy import EntropyRequester
from crash.engine import CrashEngine, EngineConfig
from crash.redis_lock import ENGINE_LOCK_KEY, LockHeartbeat, LockLost, RedisEngineLock


class Command(BaseCommand):
    help = "Run the crash game engine with a Redis single-instance lock"

    def add_arguments(self, parser):
        engine_cfg = settings.CRASH_ENGINE
        parser.add_argument(
            "--lock-ttl",
            type=int,
            default=engine_cfg.get("LOCK_TTL", 30),
            help="Lock TTL in seconds (default: 30)",
        )
        parser.add_argument(
            "--heartbeat-interval",
            type=float,
            default=engine_cfg.get("LOCK_HEARTBEAT", 10),
            help="Heartbeat interval in seconds (default: 10)",
        )

    def handle(self, *args, **options):
        lock_ttl = options["lock_ttl"]
        heartbeat_interval = options["heartbeat_interval"]

        config = EngineConfig.from_settings()
        self.stdout.write(
            f"[ENGINE] Starting: protocol v{config.protocol_version}, "
            f"lock TTL {lock_ttl}s, heartbeat {heartbeat_interval}s"
        )

        lock = RedisEngineLock(ENGINE_LOCK_KEY, lock_ttl)
        if not lock.acquire():
            self.stdout.write(self.style.WARNING("[ENGINE] Another engine already running. Exiting."))
            return

        self.stdout.write(self.style.SUCCESS("[ENGINE] Lock acquired. Engine starting."))

        try:
            asyncio.run(self._serve(config, LockHeartbeat(lock, every_seconds=heartbeat_interval)))
        except LockLost:
            self.stdout.write(self.style.ERROR("[ENGINE] Engine lock lost. Another instance may have taken over."))
        finally:
            if lock.release():
                self.stdout.write(self.style.SUCCESS("[ENGINE] Lock released. Engine stopped."))

    async def _serve(self, config, heartbeat):
        chain = CrashGameChain.from_settings()
        chain_cfg = settings.CHAIN
        engine_cfg = settings.CRASH_ENGINE
        entropy = EntropyRequester(
            chain,
            poll_interval=engine_cfg.get("ENTROPY_POLL_INTERVAL", 3.0),
            max_wait=engine_cfg.get("ENTROPY_MAX_WAIT", 120.0),
            reveal_delay_blocks=chain_cfg.get("REVEAL_DELAY_BLOCKS", 2),
            block_poll_interval=engine_cfg.get("BLOCK_POLL_INTERVAL", 1.0),
        )
        engine = CrashEngine(chain, entropy, get_channel_layer(), config=config)

        engine_task = asyncio.create_task(engine.run())
        heartbeat_task = asyncio.create_task(heartbeat.run())

        loop = asyncio.get_running_loop()

        def shutdown():
            self.stdout.write(self.style.WARNING("[ENGINE] Shutdown requested."))
            engine.stop()
            engine_task.cancel()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown)

        try:
            done, _ = await asyncio.wait(
                {engine_task, heartbeat_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (engine_task, heartbeat_task):
                task.cancel()
            await asyncio.gather(engine_task, heartbeat_task, return_exceptions=True)

        # surfaces LockLost from the heartbeat
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
