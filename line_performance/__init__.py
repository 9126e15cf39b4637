"""
Line Performance: production line KPI scoring, ranking and rule automation.

Analytics backend turning line/shift production records and quality
checkpoint measurements into scored, ranked, report-ready data.

To swap the workbook input for a database feed:
    Implement the RowSource protocol in line_performance.loaders with SQL
    queries (or wrap existing query functions in CallableRowSource). The
    PerformanceRecord and QualityMeasurement shapes remain unchanged.

To connect a front end:
    Call dashboard.get_manager_overview(metrics, rules) for cards and ranking
    tables, and export.render(report, fmt) for downloads.

To tune scoring:
    Edit config.SCORE_BREAKPOINTS (segment tables per metric) and
    config.RATING_THRESHOLDS; score_records() picks the tables up directly.
"""
