"""
Task Scheduler Service - Periodic background checks
Runs the orphan-sample reconciliation sweep and database health checks.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass

from ..core.config import settings
from ..core.database import db_manager
from ..store.base import DataStore
from .specimen_generation import SpecimenGenerationService

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Represents a scheduled task"""
    name: str
    func: Callable
    interval_seconds: int
    next_run: datetime
    enabled: bool = True
    last_run: Optional[datetime] = None
    run_count: int = 0
    error_count: int = 0


class TaskScheduler:
    """Scheduler for periodic tasks"""
    
    def __init__(self, store: DataStore, poll_seconds: float = 10):
        self.running = False
        self.tasks: Dict[str, ScheduledTask] = {}
        self.poll_seconds = poll_seconds
        self.specimens = SpecimenGenerationService(store)
        self.last_orphan_ids: List[str] = []
        self._loop_task: Optional[asyncio.Task] = None
        
        # Register default tasks
        self._register_default_tasks()
        
        logger.info("TaskScheduler initialized")
    
    async def start(self):
        """Start the task scheduler"""
        self.running = True
        self._loop_task = asyncio.create_task(self._scheduler_loop())
        logger.info("TaskScheduler service started")
    
    async def stop(self):
        """Stop the task scheduler"""
        self.running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        logger.info("TaskScheduler service stopped")
    
    def _register_default_tasks(self):
        """Register default scheduled tasks"""
        
        # Orphan samples left by an interrupted specimen generation
        self.add_task(
            "orphan_sample_sweep",
            self.sweep_orphan_samples,
            interval_seconds=settings.reconciliation_interval_seconds,
            enabled=settings.reconciliation_enabled
        )
        
        # Database health check - every 5 minutes
        self.add_task(
            "health_check",
            self._system_health_check,
            interval_seconds=300
        )
    
    def add_task(self, name: str, func: Callable, interval_seconds: int, enabled: bool = True):
        """Add a new scheduled task"""
        next_run = datetime.now() + timedelta(seconds=interval_seconds)
        
        self.tasks[name] = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval_seconds,
            next_run=next_run,
            enabled=enabled
        )
        logger.info(f"Scheduled task '{name}' added, next run: {next_run}")
    
    def enable_task(self, name: str):
        """Enable a scheduled task"""
        if name in self.tasks:
            self.tasks[name].enabled = True
            logger.info(f"Task '{name}' enabled")
    
    def disable_task(self, name: str):
        """Disable a scheduled task"""
        if name in self.tasks:
            self.tasks[name].enabled = False
            logger.info(f"Task '{name}' disabled")
    
    async def _scheduler_loop(self):
        """Main scheduler loop"""
        logger.info("Starting task scheduler loop")
        
        while self.running:
            now = datetime.now()
            for task in list(self.tasks.values()):
                if task.enabled and now >= task.next_run:
                    await self.run_task(task)
            await asyncio.sleep(self.poll_seconds)
    
    async def run_task(self, task: ScheduledTask):
        """Execute a scheduled task; a failing task is rescheduled, not dropped"""
        try:
            logger.info(f"Running scheduled task: {task.name}")
            
            if inspect.iscoroutinefunction(task.func):
                await task.func()
            else:
                task.func()
            
            task.last_run = datetime.now()
            task.run_count += 1
            task.next_run = task.last_run + timedelta(seconds=task.interval_seconds)
            
            logger.info(f"Task '{task.name}' completed successfully")
            
        except Exception as e:
            logger.error(f"Error running task '{task.name}': {str(e)}")
            task.error_count += 1
            task.next_run = datetime.now() + timedelta(seconds=task.interval_seconds)
    
    async def sweep_orphan_samples(self) -> List[str]:
        """Report samples that have no exam; nothing is repaired automatically"""
        orphans = await self.specimens.find_orphan_samples()
        self.last_orphan_ids = [sample.id for sample in orphans]
        
        if orphans:
            for sample in orphans:
                logger.warning(
                    f"Orphan sample {sample.id} (barcode {sample.barcode}) "
                    f"of work order {sample.work_order_id} has no exam"
                )
        else:
            logger.debug("Orphan sample sweep found nothing")
        return self.last_orphan_ids
    
    def _system_health_check(self):
        """Perform system health checks"""
        if not db_manager.test_connection():
            logger.warning("Database health check failed")
            return
        logger.debug("System health check passed")
    
    def get_task_status(self) -> List[Dict[str, Any]]:
        """Get status of all scheduled tasks"""
        status = []
        
        for name, task in self.tasks.items():
            status.append({
                'name': name,
                'enabled': task.enabled,
                'next_run': task.next_run.isoformat(),
                'last_run': task.last_run.isoformat() if task.last_run else None,
                'run_count': task.run_count,
                'error_count': task.error_count,
                'interval_seconds': task.interval_seconds
            })
        
        return status
