from .service import ClubSettlementReport, SettlementService, WeeklyStats

__all__ = ["ClubSettlementReport", "SettlementService", "WeeklyStats"]
