from .records_csv import default_filename, export_records, records_to_csv

__all__ = ["default_filename", "export_records", "records_to_csv"]
