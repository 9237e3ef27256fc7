#!/usr/bin/env python3
"""
LIS Workflow Core - Production Service Runner
Runs the workflow API and the reconciliation scheduler without user interaction.
"""

import asyncio
import logging
import signal
import sys
import threading
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Optional

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

# Import workflow components
from lis_workflow.core.config import settings
from lis_workflow.core.database import create_tables, db_manager
from lis_workflow.api.rest_api import app
from lis_workflow.services.scheduler import TaskScheduler
from lis_workflow.store.sqlalchemy_store import SQLAlchemyDataStore

console = Console()
logger = logging.getLogger(__name__)


class LISProductionService:
    """Production service manager for the LIS workflow core"""
    
    def __init__(self):
        self.task_scheduler: Optional[TaskScheduler] = None
        self.api_server_thread: Optional[threading.Thread] = None
        self.running = False
        
        # Setup signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        
        logger.info("LIS Production Service initialized")
    
    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully"""
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.running = False
    
    async def start_services(self):
        """Start all workflow services"""
        try:
            console.print("\n[bold blue]🏥 Starting LIS workflow services...[/bold blue]")
            
            # 1. Initialize database
            await self._initialize_database()
            
            # 2. Start REST API server
            await self._start_api_server()
            
            # 3. Start task scheduler
            await self._start_task_scheduler()
            
            # 4. Display service status
            self._display_service_status()
            
            self.running = True
            console.print("\n[bold green]✅ All LIS services started successfully![/bold green]")
            
            # Keep services running
            await self._run_services()
            
        except Exception as e:
            logger.error(f"Failed to start LIS services: {str(e)}")
            console.print(f"[bold red]❌ Failed to start services: {str(e)}[/bold red]")
            await self.stop_services()
            sys.exit(1)
    
    async def _initialize_database(self):
        """Initialize database and create tables"""
        console.print("📀 Initializing database...")
        
        if not db_manager.test_connection():
            raise RuntimeError("Database connection failed")
        
        create_tables()
        
        console.print("✅ Database initialized successfully")
        logger.info("Database initialized and tables created")
    
    async def _start_api_server(self):
        """Start REST API server in a separate thread"""
        console.print(f"🚀 Starting REST API server on {settings.api_host}:{settings.api_port}...")
        
        def run_api_server():
            uvicorn.run(
                app,
                host=settings.api_host,
                port=settings.api_port,
                log_level=settings.log_level.lower(),
                access_log=not settings.is_production
            )
        
        self.api_server_thread = threading.Thread(target=run_api_server, daemon=True)
        self.api_server_thread.start()
        
        # Give the API server a moment to start
        await asyncio.sleep(2)
        
        console.print(f"✅ REST API server started on http://{settings.api_host}:{settings.api_port}")
        logger.info(f"REST API server started on {settings.api_host}:{settings.api_port}")
    
    async def _start_task_scheduler(self):
        """Start task scheduler for periodic operations"""
        console.print("⏰ Starting task scheduler...")
        
        self.task_scheduler = TaskScheduler(SQLAlchemyDataStore())
        await self.task_scheduler.start()
        
        console.print("✅ Task scheduler started")
        logger.info("Task scheduler service started")
    
    def _display_service_status(self):
        """Display current service status"""
        status_text = Text()
        status_text.append("🏥 LIS Workflow Core - Production Mode\n\n", style="bold blue")
        status_text.append(f"Version: {settings.app_version}\n", style="green")
        status_text.append(f"Environment: {settings.environment}\n", style="yellow")
        status_text.append(f"Database: {settings.database_url}\n", style="cyan")
        status_text.append(f"REST API: http://{settings.api_host}:{settings.api_port}\n", style="cyan")
        sweep = f"every {settings.reconciliation_interval_seconds}s" if settings.reconciliation_enabled else "disabled"
        status_text.append(f"Orphan sample sweep: {sweep}\n", style="magenta")
        status_text.append(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n", style="white")
        
        panel = Panel(
            status_text,
            title="[bold]LIS Service Status[/bold]",
            border_style="green"
        )
        
        console.print(panel)
    
    async def _run_services(self):
        """Keep services running until shutdown signal received"""
        try:
            console.print("\n[bold cyan]🔄 LIS services are running... Press Ctrl+C to stop[/bold cyan]")
            
            while self.running:
                await self._health_check()
                await asyncio.sleep(30)
                
        except KeyboardInterrupt:
            logger.info("Shutdown signal received")
        finally:
            await self.stop_services()
    
    async def _health_check(self):
        """Perform health checks on all services"""
        if not db_manager.test_connection():
            logger.warning("Database health check failed")
        
        if self.api_server_thread and not self.api_server_thread.is_alive():
            logger.warning("REST API server thread is not running")
        
        if self.task_scheduler:
            for task in self.task_scheduler.get_task_status():
                if task['error_count']:
                    logger.warning(f"Scheduled task {task['name']} has failed {task['error_count']} times")
    
    async def stop_services(self):
        """Stop all services gracefully"""
        console.print("\n[bold yellow]🛑 Stopping LIS services...[/bold yellow]")
        
        if self.task_scheduler:
            await self.task_scheduler.stop()
            console.print("✅ Task scheduler stopped")
        
        console.print("[bold green]✅ All services stopped gracefully[/bold green]")
        logger.info("LIS services stopped gracefully")


def configure_logging():
    """Rotating file log plus console output in development"""
    settings.create_log_directory()
    handlers = [
        RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_size,
            backupCount=settings.log_backup_count
        )
    ]
    if settings.is_development:
        handlers.append(logging.StreamHandler())
    
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format=settings.log_format,
        handlers=handlers
    )


async def main():
    """Main entry point for production service"""
    configure_logging()
    
    lis_service = LISProductionService()
    await lis_service.start_services()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        console.print("\n[bold blue]LIS workflow services stopped.[/bold blue]")
    except Exception as e:
        console.print(f"[bold red]Fatal error: {str(e)}[/bold red]")
        sys.exit(1)
