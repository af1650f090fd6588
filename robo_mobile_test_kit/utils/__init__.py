"""
Utility functions for robo-mobile-test-kit
"""

from .RoboHelper import (
    load_test_data,
    get_env,
    generate_report,
    print_results_summary,
)

__all__ = [
    "load_test_data",
    "get_env",
    "generate_report",
    "print_results_summary",
]
