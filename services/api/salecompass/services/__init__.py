"""Import pipeline services.

Routes stay thin and call into these modules:
- csv_parser / chunks: sheet reading and chunked-upload reassembly
- reconciliation / catalog: matching rows to the catalog, adding products
- comparator: sale price vs. market average
- persistence / csv_import: import batches and the end-to-end pipeline
"""
