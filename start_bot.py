"""
Bot Launcher - Start the task queues of the configured profiles

Seeds profiles from master.conf / whiteout_survival.conf into the database,
schedules the bootstrap task and every enabled task per profile, starts one
worker per profile and optionally serves the monitoring API.

Usage:
    python start_bot.py                          # All enabled profiles
    python start_bot.py -p Main -p Farm1         # Selected profiles only
    python start_bot.py --web                    # Also serve the web API
    python start_bot.py --list-tasks             # List task types and exit

Options:
    -p, --profile       Profile name (repeatable, default: all enabled)
    -w, --web           Serve the monitoring API (host/port from master.conf)
    --debug             Log DEBUG records
    -l, --list-tasks    List task types and exit
    -h, --help          Show this help message
"""

import argparse
import sys
import time

from frostbot import (
    EmulatorManager,
    EmulatorSlots,
    Navigator,
    ProfileRepository,
    StaminaTracker,
    StateManager,
    TaskQueueManager,
    TaskRegistry,
    TaskServices,
    TaskType,
    Vision,
    get_option,
    get_profile_definitions,
    log,
    set_debug_mode,
    set_headless_mode,
    set_state_manager,
)
from frostbot.web import create_app
from games.whiteout_survival import TASK_KINDS, read_stamina
from version import get_version


def list_tasks():
    print("Available task types:")
    for task_type in TaskType:
        enable = task_type.enable_key or 'always'
        print(f"  - {task_type.name:<20} {task_type.display_name:<20} ({enable})")


def select_profiles(repository, names):
    """Profiles to run

    Args:
        repository: ProfileRepository
        names: Requested profile names (empty = every enabled profile)

    Returns:
        list: Profile objects

    Raises:
        SystemExit: If a requested profile does not exist
    """
    if not names:
        return repository.list_profiles(enabled_only=True)

    profiles = []
    for name in names:
        profile = repository.get_profile_by_name(name)
        if profile is None:
            available = ', '.join(p.name for p in repository.list_profiles())
            print(f"ERROR: Profile '{name}' not found")
            print(f"Available profiles: {available}")
            sys.exit(1)
        profiles.append(profile)
    return profiles


def build_manager(state_manager):
    """Wire the framework collaborators together

    Returns:
        tuple: (TaskQueueManager, ProfileRepository)
    """
    repository = ProfileRepository(state_manager.db)
    emulators = EmulatorManager()
    vision = Vision(emulators)
    services = TaskServices(
        profiles=repository,
        emulators=emulators,
        vision=vision,
        navigator=Navigator(vision, emulators),
        stamina=StaminaTracker(),
        stamina_reader=read_stamina,
    )
    registry = TaskRegistry(services, TASK_KINDS)
    manager = TaskQueueManager(registry, state_manager=state_manager, slots=EmulatorSlots())
    return manager, repository


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='FrostBot - task scheduler for Whiteout Survival',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python start_bot.py
  python start_bot.py -p Main -p Farm1
  python start_bot.py --web --debug
  python start_bot.py --list-tasks
        """
    )
    parser.add_argument('-p', '--profile', action='append', default=[],
                        help='Profile name (repeatable, default: all enabled profiles)')
    parser.add_argument('-w', '--web', action='store_true',
                        help='Serve the monitoring API')
    parser.add_argument('--debug', action='store_true',
                        help='Log DEBUG records')
    parser.add_argument('-l', '--list-tasks', action='store_true',
                        help='List task types and exit')

    args = parser.parse_args()

    if args.list_tasks:
        list_tasks()
        sys.exit(0)

    set_headless_mode(True)
    set_debug_mode(args.debug)

    state_manager = StateManager()
    set_state_manager(state_manager)
    log(f"FrostBot {get_version()} starting")

    manager, repository = build_manager(state_manager)
    repository.seed_from_config(get_profile_definitions())

    profiles = select_profiles(repository, args.profile)
    if not profiles:
        print("ERROR: No enabled profiles found in master.conf")
        sys.exit(1)

    for profile in profiles:
        manager.schedule_profile(profile)
    manager.start_queues()

    try:
        if args.web:
            web = get_option('web')
            app = create_app(manager, state_manager)
            log(f"Web API at http://{web['host']}:{web['port']}")
            app.run(host=web['host'], port=web['port'], debug=False, use_reloader=False)
        else:
            while any(queue.is_running for queue in manager.queues()):
                time.sleep(1)
    except KeyboardInterrupt:
        log("Interrupted, stopping queues")
    finally:
        manager.stop_queues()


if __name__ == "__main__":
    main()
