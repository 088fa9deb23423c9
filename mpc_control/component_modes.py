"""
Component isolation modes for modular testing.

This module defines which pipeline stages are active/bypassed to enable
systematic evaluation of each stage's contribution (for example, how much the
latency compensation improves tracking at high speed).
"""

from dataclasses import dataclass
import argparse
import sys


@dataclass
class ComponentMode:
    """Configuration for which pipeline stages are active."""

    # State Preparation Layer
    use_latency_compensation: bool = True  # If False, solve from the measured state

    # Transport Layer
    use_actuation_delay: bool = True  # If False, reply as soon as the solve finishes

    # Run Logging
    use_data_logging: bool = True  # If False, no CSV files are written

    def __str__(self):
        """Human-readable description of active stages."""
        components = []

        if self.use_latency_compensation:
            components.append("Latency Compensation")
        else:
            components.append("Measured State")

        components.append("MPC")

        if self.use_actuation_delay:
            components.append("Delayed Reply")
        else:
            components.append("Immediate Reply")

        if not self.use_data_logging:
            components.append("No Logging")

        return " → ".join(components)

    def to_dict(self):
        """Convert to dictionary for logging."""
        return {
            'use_latency_compensation': self.use_latency_compensation,
            'use_actuation_delay': self.use_actuation_delay,
            'use_data_logging': self.use_data_logging,
        }


def parse_component_flags(args=None):
    """
    Parse command-line flags to determine which stages are active.

    Args:
        args: List of command-line arguments (default: sys.argv[1:])

    Returns:
        tuple: (ComponentMode, remaining_args)
            - ComponentMode with appropriate settings
            - List of remaining arguments not consumed
    """
    parser = argparse.ArgumentParser(add_help=False)

    # Stage bypass flags
    parser.add_argument('--no-latency', action='store_true',
                        help='Bypass latency compensation (solve from the measured state)')
    parser.add_argument('--no-actuation-delay', action='store_true',
                        help='Send replies without the artificial actuation delay')
    parser.add_argument('--no-logging', action='store_true',
                        help='Disable CSV run logging')

    # Parse known args, keep the rest
    if args is None:
        args = sys.argv[1:]

    known_args, remaining_args = parser.parse_known_args(args)

    mode = ComponentMode(
        use_latency_compensation=not known_args.no_latency,
        use_actuation_delay=not known_args.no_actuation_delay,
        use_data_logging=not known_args.no_logging,
    )

    return mode, remaining_args
