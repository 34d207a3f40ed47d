# config.py

# AOI default as [lon_min, lat_min, lon_max, lat_max] (Sylhet basin, Bangladesh)
AOI = [91.00, 24.20, 92.50, 25.30]
AOI_SIMPLIFY_M = 100  # simplification tolerance in metres

# Pre / post event windows, end date exclusive
PRE_START  = '2022-03-01'
PRE_END    = '2022-04-15'
POST_START = '2022-06-16'
POST_END   = '2022-06-30'

VV_DIFF_THRESHOLD = 2.0  # dB drop (pre - post) that counts as flood
POINTS_PER_CLASS  = 500
SEED              = 42
SCALE             = 10           # m/pixel
CRS               = 'EPSG:32645'

# Sentinel-1 filters
S1_COLLECTION   = 'COPERNICUS/S1_GRD'
INSTRUMENT_MODE = 'IW'
ORBIT_PASS      = 'DESCENDING'
POLARIZATION    = 'VV'

EXPORT_FOLDER    = 'GEE_Exports'
EXPORT_FILE_NAME = 'Flood_NonFlood_Samples_2022'
EXPORT_COLUMNS   = ['sample_id', 'longitude', 'latitude', 'flood']

# Local engine
CATALOG_DIR = 'data/s1_catalog'
EXPORTS_DIR = 'data/exports'
PROC_DIR    = 'data/processed'

# GEE project ID
EE_PROJECT = "flood-points-2022"
