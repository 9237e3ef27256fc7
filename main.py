#!/usr/bin/env python3
"""
LIS Workflow Core - Main Entry Point
Interactive console for specimen generation, sample tracking, exam results and validation.
"""

import asyncio
import sys
import logging
from logging.handlers import RotatingFileHandler
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.text import Text

# Import workflow components
from lis_workflow.core.config import settings
from lis_workflow.core.database import create_tables, get_session, db_manager
from lis_workflow.models import WorkOrder, Sample, Exam, ExamType, AuditEntityType, SampleType
from lis_workflow.services.audit import AuditEmitter, AuditTrail
from lis_workflow.services.exam_lifecycle import ExamLifecycleService
from lis_workflow.services.sample_lifecycle import SampleLifecycleService
from lis_workflow.services.specimen_generation import SpecimenGenerationService
from lis_workflow.store.sqlalchemy_store import SQLAlchemyDataStore

# Set up logging
settings.create_log_directory()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format=settings.log_format,
    handlers=[
        RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.log_max_size,
            backupCount=settings.log_backup_count
        ),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)
console = Console()

DEMO_USER = "console"
DEMO_ACCESSION = "ORD-0001"

DEMO_CATALOG = [
    {
        "code": "GLU",
        "name": "Glucosa",
        "sample_type": SampleType.SERUM,
        "field_schema": {
            "sections": [
                {
                    "id": "main",
                    "label": "Resultado",
                    "fields": [
                        {"key": "glucose", "label": "Glucosa", "type": "numeric",
                         "unit": "mg/dL", "referenceRange": "70-100"},
                        {"key": "flag", "label": "Indicador", "type": "enum",
                         "options": ["normal", "alto", "bajo"]},
                    ],
                }
            ]
        },
    },
    {
        "code": "EGO",
        "name": "Examen general de orina",
        "sample_type": SampleType.URINE,
        "field_schema": {
            "sections": [
                {
                    "id": "fisico",
                    "label": "Examen físico",
                    "fields": [
                        {"key": "color", "label": "Color", "type": "string"},
                        {"key": "ph", "label": "pH", "type": "numeric", "referenceRange": "5-8"},
                    ],
                }
            ]
        },
    },
]

DEMO_RESULTS = {
    "GLU": {"glucose": "92", "flag": "normal"},
    "EGO": {"color": "amarillo", "ph": 6},
}


def display_welcome():
    """Display welcome message and system information"""
    
    welcome_text = Text()
    welcome_text.append("🏥 LIS Workflow Core\n", style="bold blue")
    welcome_text.append(f"Version: {settings.app_version}\n", style="green")
    welcome_text.append(f"Environment: {settings.environment}\n", style="yellow")
    welcome_text.append(f"Database: {settings.database_url}\n", style="cyan")
    
    panel = Panel(
        welcome_text,
        title="[bold]LIS System Status[/bold]",
        border_style="blue"
    )
    
    console.print(panel)


def initialize_database():
    """Initialize database and create tables"""
    try:
        console.print("\n[bold blue]Initializing Database...[/bold blue]")
        
        if db_manager.test_connection():
            console.print("✅ Database connection successful")
        else:
            console.print("❌ Database connection failed")
            return False
        
        create_tables()
        console.print("✅ Database tables created/verified")
        
        return True
        
    except Exception as e:
        console.print(f"❌ Database initialization failed: {str(e)}")
        return False


async def seed_demo_data(store: SQLAlchemyDataStore):
    """Create the demo catalog and one work order requesting every demo exam"""
    for entry in DEMO_CATALOG:
        if await store.exam_types.list(code=entry["code"]):
            continue
        result = await store.exam_types.create(**entry)
        if result.succeeded:
            console.print(f"✅ Created exam type: {entry['code']} ({entry['name']})")
        else:
            console.print(f"❌ {result.error_message('Could not create exam type')}")
    
    if not await store.work_orders.list(accession_number=DEMO_ACCESSION):
        result = await store.work_orders.create(
            patient_id="P001",
            accession_number=DEMO_ACCESSION,
            requested_exam_type_codes=[entry["code"] for entry in DEMO_CATALOG],
            referring_doctor="Dra. Pérez",
        )
        if result.succeeded:
            console.print(f"✅ Created work order: {DEMO_ACCESSION}")
        else:
            console.print(f"❌ {result.error_message('Could not create work order')}")


def show_result(step: str, result):
    """Print one lifecycle result"""
    if result.ok:
        console.print(f"✅ {step}")
    else:
        marker = "⚠️ " if result.conflict else "❌"
        console.print(f"{marker} {step}: {result.error}")
    return result.ok


async def run_demo_workflow(store: SQLAlchemyDataStore):
    """Walk the demo work order from specimen generation to validation"""
    orders = await store.work_orders.list(accession_number=DEMO_ACCESSION)
    if not orders:
        console.print("❌ Demo work order not found, create sample data first")
        return
    order = orders[0]
    
    audit = AuditEmitter(store)
    samples = SampleLifecycleService(store, audit)
    exams = ExamLifecycleService(store, audit, samples)
    specimens = SpecimenGenerationService(store, audit)
    
    result = await specimens.generate_specimens_for_order(order.id, DEMO_USER)
    if not show_result("Generate specimens", result):
        return
    await specimens.mark_labels_printed_for_order(order.id, DEMO_USER)
    show_result("Order ready for lab", await specimens.mark_order_ready_for_lab(order.id, DEMO_USER))
    
    catalog = {exam_type.id: exam_type.code for exam_type in await store.exam_types.list()}
    
    for sample_id in result.payload["sample_ids"]:
        show_result(f"Receive sample {sample_id[:8]}", await samples.mark_received(sample_id, DEMO_USER))
        show_result(f"Process sample {sample_id[:8]}", await samples.mark_in_progress(sample_id, DEMO_USER))
        
        for exam in await store.exams.list(sample_id=sample_id):
            code = catalog.get(exam.exam_type_id, "?")
            results = DEMO_RESULTS.get(code, {})
            
            started = await exams.mark_started(exam.id, DEMO_USER)
            show_result(f"Start exam {code}", started)
            show_result(
                f"Save draft {code}",
                await exams.save_draft(exam.id, results, DEMO_USER, started.updated_at)
            )
            show_result(f"Finalize {code}", await exams.finalize(exam.id, results, DEMO_USER))
            show_result(f"Send {code} to validation", await exams.send_to_validation(exam.id, DEMO_USER))
            show_result(f"Approve {code}", await exams.approve(exam.id, "validator", "Sin observaciones"))


def display_work_orders():
    """Display all work orders with their samples"""
    try:
        console.print("\n[bold blue]Work Orders:[/bold blue]")
        
        with get_session() as session:
            orders = session.query(WorkOrder).order_by(WorkOrder.created_at).all()
            
            if not orders:
                console.print("No work orders found in the system.")
                return
            
            table = Table(title="Work Orders")
            table.add_column("Accession", style="cyan", no_wrap=True)
            table.add_column("Patient", style="white")
            table.add_column("Exams", style="green")
            table.add_column("Status", style="magenta")
            table.add_column("Samples", style="yellow")
            
            for order in orders:
                table.add_row(
                    order.accession_number or order.id[:8],
                    order.patient_id,
                    ", ".join(order.requested_codes),
                    order.status.value,
                    str(len(order.samples))
                )
            
            console.print(table)
            
    except Exception as e:
        console.print(f"❌ Failed to display work orders: {str(e)}")


def display_samples():
    """Display all samples with their exams"""
    try:
        console.print("\n[bold blue]Samples:[/bold blue]")
        
        with get_session() as session:
            samples = session.query(Sample).order_by(Sample.barcode).all()
            
            if not samples:
                console.print("No samples found in the system.")
                return
            
            table = Table(title="Samples and Exams")
            table.add_column("Barcode", style="cyan", no_wrap=True)
            table.add_column("Exam type", style="white")
            table.add_column("Sample status", style="magenta")
            table.add_column("Exam status", style="green")
            table.add_column("Results", style="yellow")
            
            for sample in samples:
                exam_type = session.get(ExamType, sample.exam_type_id)
                exams = session.query(Exam).filter_by(sample_id=sample.id).all() or [None]
                for exam in exams:
                    table.add_row(
                        sample.barcode or "N/A",
                        exam_type.code if exam_type else "N/A",
                        sample.status.value,
                        exam.status.value if exam else "-",
                        str(exam.results) if exam and exam.results else ""
                    )
            
            console.print(table)
            
    except Exception as e:
        console.print(f"❌ Failed to display samples: {str(e)}")


async def display_audit_trail(store: SQLAlchemyDataStore):
    """Display the audit trail of the demo order and its samples"""
    orders = await store.work_orders.list(accession_number=DEMO_ACCESSION)
    if not orders:
        console.print("No demo work order found.")
        return
    order = orders[0]
    trail = AuditTrail(store)
    
    entries = await trail.events_for(AuditEntityType.WORK_ORDER, order.id)
    for sample in await store.samples.list(work_order_id=order.id):
        entries.extend(await trail.events_for(AuditEntityType.SAMPLE, sample.id))
        for exam in await store.exams.list(sample_id=sample.id):
            entries.extend(await trail.events_for(AuditEntityType.EXAM, exam.id))
    entries.sort(key=lambda entry: (entry["timestamp"] or "", entry["id"]))
    
    table = Table(title=f"Audit Trail - {DEMO_ACCESSION}")
    table.add_column("When", style="cyan", no_wrap=True)
    table.add_column("Entity", style="white")
    table.add_column("Action", style="green")
    table.add_column("Category", style="magenta")
    table.add_column("User", style="yellow")
    
    for entry in entries:
        table.add_row(
            entry["timestamp"] or "",
            f"{entry['entity_type']} {entry['entity_id'][:8]}",
            entry["label"],
            entry["category"],
            entry["user_id"]
        )
    
    console.print(table)


def interactive_menu():
    """Display interactive menu for workflow operations"""
    store = SQLAlchemyDataStore()
    
    while True:
        console.print("\n[bold green]LIS Workflow Menu:[/bold green]")
        console.print("  1. View Work Orders")
        console.print("  2. View Samples and Exams")
        console.print("  3. Create Sample Data")
        console.print("  4. Run Demo Workflow")
        console.print("  5. View Audit Trail")
        console.print("  0. Exit")
        
        try:
            choice = input("\nSelect an option (0-5): ").strip()
            
            if choice == "1":
                display_work_orders()
            elif choice == "2":
                display_samples()
            elif choice == "3":
                console.print("\n[bold blue]Creating Sample Data...[/bold blue]")
                asyncio.run(seed_demo_data(store))
            elif choice == "4":
                console.print("\n[bold blue]Running Demo Workflow...[/bold blue]")
                asyncio.run(run_demo_workflow(store))
            elif choice == "5":
                asyncio.run(display_audit_trail(store))
            elif choice == "0":
                console.print("\n[bold blue]Thank you for using the LIS System![/bold blue]")
                break
            else:
                console.print("❌ Invalid option. Please select 0-5.")
                
        except KeyboardInterrupt:
            console.print("\n\n[bold blue]Thank you for using the LIS System![/bold blue]")
            break
        except Exception as e:
            logger.error(f"Menu action failed: {str(e)}")
            console.print(f"❌ Error: {str(e)}")


def main():
    """Main entry point for the LIS workflow console"""
    try:
        display_welcome()
        
        if not initialize_database():
            console.print("❌ Failed to initialize database. Exiting...")
            sys.exit(1)
        
        display_work_orders()
        
        interactive_menu()
        
    except KeyboardInterrupt:
        console.print("\n\n[bold yellow]System shutdown requested...[/bold yellow]")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error in main: {str(e)}")
        console.print(f"❌ Fatal error: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
