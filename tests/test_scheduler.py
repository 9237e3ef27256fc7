"""
Tests for the task scheduler and the orphan sample sweep
"""

from lis_workflow.models import SampleStatus
from lis_workflow.services.scheduler import TaskScheduler


class TestTaskScheduler:
    """Task registration and execution"""
    
    def test_default_tasks(self, store):
        scheduler = TaskScheduler(store)
        
        names = [task["name"] for task in scheduler.get_task_status()]
        assert names == ["orphan_sample_sweep", "health_check"]
    
    def test_enable_disable(self, store):
        scheduler = TaskScheduler(store)
        
        scheduler.disable_task("health_check")
        assert scheduler.tasks["health_check"].enabled is False
        scheduler.enable_task("health_check")
        assert scheduler.tasks["health_check"].enabled is True
    
    async def test_failing_task_is_rescheduled(self, store):
        scheduler = TaskScheduler(store)
        
        def broken():
            raise RuntimeError("boom")
        
        scheduler.add_task("broken", broken, interval_seconds=60)
        task = scheduler.tasks["broken"]
        
        await scheduler.run_task(task)
        
        assert task.error_count == 1
        assert task.run_count == 0
        assert task.next_run is not None


class TestOrphanSweep:
    """Samples without exams are reported"""
    
    async def test_sweep_reports_orphans(self, store, single_exam_order, glucose_type, sample, exam):
        orphan = (await store.samples.create(
            work_order_id=single_exam_order.id,
            exam_type_id=glucose_type.id,
            barcode="SMP-ORD-0002-02",
            status=SampleStatus.LABELED,
        )).data
        scheduler = TaskScheduler(store)
        
        task = scheduler.tasks["orphan_sample_sweep"]
        await scheduler.run_task(task)
        
        assert scheduler.last_orphan_ids == [orphan.id]
        assert task.run_count == 1
    
    async def test_sweep_without_orphans(self, store, sample, exam):
        scheduler = TaskScheduler(store)
        
        assert await scheduler.sweep_orphan_samples() == []
