#!/usr/bin/env python3
"""
Example script showing how to drive the wizard engine programmatically.

Walks a client through part of the living space program, leaves, resumes
from the store, and completes the session.
"""
import asyncio
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from services.logging_config import configure_logging
from wizard import (
    InMemoryResponseStore,
    LivingStep,
    WizardController,
    WizardEventType,
)


def print_event(event):
    print(f"  event: {event.event_type.value} step={event.step_id} {event.payload}")


async def example_first_visit(store):
    """Example: start a session, answer the first two steps, then leave"""
    print("Example 1: First Visit")
    print("=" * 60)

    session = await store.create_session("Jane Client", "Hillside Residence")
    controller = await WizardController.open(store, session.id)
    controller.subscribe(print_event, WizardEventType.STEP_SYNCED)

    controller.set_field(LivingStep.WORK.value, "workFromHome", "often")
    controller.set_field(LivingStep.WORK.value, "wfhPeopleCount", 2)
    controller.next()
    controller.set_field(LivingStep.HOBBIES.value, "hobbies", ["music", "yoga"])
    await controller.flush()

    print(f"\nActive step: {controller.current_step.title}")
    print(f"Progress: {controller.progress_percentage}%")
    print(f"All changes saved: {controller.sync_status.is_synced}")
    return session.id


async def example_resume_and_complete(store, session_id):
    """Example: resume where the client left off and finish"""
    print("\n\nExample 2: Resume and Complete")
    print("=" * 60)

    controller = await WizardController.open(store, session_id)
    print(f"Resumed at: {controller.current_step.title}")
    print(f"Hobbies so far: {controller.current_step_data().get('hobbies')}")

    controller.go_to(controller.step_count - 1)
    controller.set_field(LivingStep.FINAL.value, "garageSize", "3-car")

    result = await controller.complete()
    print(f"\nCompleted (already completed: {result.already_completed})")

    report = await store.get_report(session_id)
    for step in report.steps:
        if step.data:
            print(f"  {step.title}: {step.data}")

    again = await controller.complete()
    print(f"\nSecond completion is a notice only: already_completed={again.already_completed}")


async def main():
    configure_logging(level="WARNING")
    store = InMemoryResponseStore()
    session_id = await example_first_visit(store)
    await example_resume_and_complete(store, session_id)


if __name__ == "__main__":
    asyncio.run(main())
