# tracefs_eventer/utils/helpers.py - Helper functions
"""
Prerequisite checks for reading events from tracefs.
"""

import os
from typing import List, Tuple
import logging

from tracefs_eventer.collector.mounts import MountpointRetriever
from tracefs_eventer.collector.tracepoint_deducer import TraceFSTracepointDeducer
from tracefs_eventer.errors import TraceFSEventerError


logger = logging.getLogger(__name__)


def check_root_privileges() -> bool:
    """
    Check if running with root privileges.

    Returns:
        True if running as root, False otherwise
    """
    return os.geteuid() == 0 if hasattr(os, 'geteuid') else False


def check_tracefs_mounted(retriever: MountpointRetriever) -> bool:
    """
    Check that tracefs is mounted.

    Args:
        retriever: Mountpoint retriever to query

    Returns:
        True if a mountpoint was found
    """
    try:
        mountpoint = retriever.retrieve_mountpoint()
    except TraceFSEventerError as e:
        logger.error(f"tracefs not found: {e}")
        return False

    logger.info(f"tracefs mounted at {mountpoint}")
    return True


def check_tracepoint_available(retriever: MountpointRetriever) -> bool:
    """
    Check that the kernel exposes a supported TCP state-change tracepoint.

    Args:
        retriever: Mountpoint retriever to query

    Returns:
        True if a tracepoint was found
    """
    try:
        tracepoint = TraceFSTracepointDeducer(retriever).deduce_tracepoint()
    except TraceFSEventerError as e:
        logger.error(f"No usable tracepoint: {e}")
        return False

    logger.info(f"Tracepoint {tracepoint} available")
    return True


def run_prerequisite_checks(retriever: MountpointRetriever) -> List[Tuple[str, bool]]:
    """
    Run all prerequisite checks.

    Args:
        retriever: Mountpoint retriever to query

    Returns:
        List of (check name, passed)
    """
    return [
        ("Root privileges", check_root_privileges()),
        ("tracefs mounted", check_tracefs_mounted(retriever)),
        ("TCP state tracepoint", check_tracepoint_available(retriever)),
    ]


def check_prerequisites(retriever: MountpointRetriever) -> bool:
    """
    Check all prerequisites for reading events.

    Args:
        retriever: Mountpoint retriever to query

    Returns:
        True if all prerequisites are met, False otherwise
    """
    all_passed = True

    print("Checking prerequisites...")
    for name, passed in run_prerequisite_checks(retriever):
        status = "✓" if passed else "✗"
        print(f"  {status} {name}")

        if not passed:
            all_passed = False

    return all_passed
