"""
Adapters — process execution for the lifecycle engine.

Build steps and verification probes start child processes only through
``adapters.shell.command.run_command``; the engine never calls
``subprocess`` itself.
"""
