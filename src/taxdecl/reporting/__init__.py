from .report_sink import ExcelReviewSink, ReviewSink

__all__ = ["ExcelReviewSink", "ReviewSink"]
