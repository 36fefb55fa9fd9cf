"""Block naming, block metadata and the column layout of time series tables."""