"""
Pump Sniper Risk Monitor
========================

Tiered exit-condition engine for speculative Pump.fun positions.

Components:
- core/exit_policy.py: pure per-tick exit decision (rug, panic, trailing, moon)
- core/monitor.py: PositionMonitor polling loop for one position
- core/supervisor.py: Supervisor keeping one monitor per token
- api/: Pump.fun discovery and DexScreener price feed
- alerts/: Telegram alerts fed by monitor events
- service.py: SniperService tying discovery to monitoring
"""

__version__ = "0.1.0"
