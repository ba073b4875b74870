"""
Core Module - Driver registry, cadence rules, scheduler and query engine

Import submodules directly (lifelog.core.registry, lifelog.core.scheduler,
lifelog.core.query_engine); config depends on lifelog.core.cadence, so this
package does not import the rest eagerly.
"""
