# MarketDash — stock dashboard data backend
__version__ = "1.0.0"
