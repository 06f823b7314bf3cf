"""
Runtime side of the workflow compiler: run context, connection resolution and
the streaming execution engine (see ``workflow_compiler.runtime.execution``).
"""
