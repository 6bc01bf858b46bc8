"""deckhand: install, run and update projects on a single host.

Projects are container stacks, init-system services or plain script bundles,
all driven through one enable/disable/start/stop/restart/update life-cycle.
"""

__version__ = "1.1.0"
