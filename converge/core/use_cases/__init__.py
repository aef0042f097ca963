"""
Use cases — the vertical slices behind each CLI command.

    from converge.core.use_cases.converge import converge_machine
"""
