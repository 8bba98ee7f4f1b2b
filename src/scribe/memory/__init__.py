"""Memory curation pipeline — long-term summary of a user's journal.

Layout (document paths):
    users/{uid}                       # receiptCount: creation counter
    users/{uid}/memory/summary        # summary, lastUpdated, refreshedAtCount
    users/{uid}/receipts/{entryId}    # message, timestamp
    refreshJobs/{uid}:{count}         # deferred refresh claims

Every `batch_size` created entries the summary is refreshed from the most
recent `curation_window` entries, either inside the counter transaction
(inline) or by the refresh worker after the transaction claims the batch
(deferred).
"""
