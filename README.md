# task_scheduler

A small scheduler that runs plugin tasks on cron schedules (with a seconds
field), plus two supporting pieces:

- an **auto-buy** task that reads the AHR999 Bitcoin index, picks a
  multiplier from a configurable table and places a limit buy for BTC on
  Binance worth `base_amount × multiplier` USDT, then sends a report;
- a **push** layer that sends notifications immediately, batches delayed
  messages into one merged message, or sends them at a scheduled minute,
  keeping monthly history files of what was sent and what failed.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running

From a directory that contains `configs/config.yaml`:

```
task-scheduler
```

or point it at another main configuration file:

```
task-scheduler --config path/to/config.yaml
```

The command loads the main configuration, validates it, registers the
auto-buy plugin (`task_scheduler.autobuy.strategy.AutoBuyPlugin`), adds
every enabled task and runs until it receives Ctrl+C (SIGINT) or SIGTERM,
then stops the scheduler. It exits with status 1 if the main
configuration cannot be read or is invalid. A task that cannot be added
(unknown plugin, bad parameters, bad schedule) is logged and skipped.

### Main configuration

```yaml
log_level: info          # default: info
plugins_dir: ./plugins   # default: ./plugins
tasks:
  - name: auto-buy
    config_file: configs/auto-buy.yaml
    enabled: true
```

Keys are matched case-insensitively. Disabled tasks are skipped; a task
whose config file cannot be read is logged and skipped. Every task needs a
`name` and a `config_file`. The task's `name` selects the plugin of the
same name.

### Task configuration

```yaml
schedule: "0 0 9 * * *"   # second minute hour day-of-month month day-of-week
params:
  enabled: true
  debug: false
  base_amount: 100
  ahr999_timer_table: '{"<0.4": 4, "0.4-0.6": 3, "0.6-0.8": 2, "0.8-1.2": 1, "1.2-1.4": 0.6, "1.4-1.6": 0.3, "1.6-1.8": 0.15}'
```

Schedules (`task_scheduler.cron.parse_schedule`) take six fields with
ranges, lists, steps and month/weekday names, the descriptors `@yearly`,
`@annually`, `@monthly`, `@weekly`, `@daily`, `@midnight`, `@hourly`, or
an interval such as `@every 1h30m`. A `CRON_TZ=Zone` or `TZ=Zone` prefix
sets the time zone the fields are read in.

For the auto-buy task, `base_amount` and `ahr999_timer_table` are
required; the table is a JSON object given as a string. Range keys may be
`<x`, `>x`, `a-b` (a inclusive, b exclusive) or a single value; the first
range in table order that holds the index is used. If the index falls in
no range the task refuses to buy. `enabled` must be `true` for the task to
do anything, and `debug: true` logs the price, index and amount.

The auto-buy task reads its exchange credentials from the environment
variables `BINANCE_API_KEY` and `BINANCE_SECRET_KEY`. The exchange client
always goes through a proxy: `HTTPS_PROXY` if set, otherwise
`http://127.0.0.1:7890`. AHR999 data is cached per month as JSON lines
under `plugins/auto-buy/ahr999_history` (relative to the working
directory), keeping only days from 2024-01-01 on.

## Library use

Computing an investment amount:

```python
from task_scheduler.autobuy.amount import calculate_amount

amount = calculate_amount(1000, 0.5, {"0.4-0.6": 3, "0.6-0.8": 2})
# 3000.0
```

Running tasks yourself:

```python
from task_scheduler.apps import App1Plugin
from task_scheduler.manager import TaskManager
from task_scheduler.plugin import TaskInfo

manager = TaskManager()
manager.register_plugin(App1Plugin())
manager.add_task(TaskInfo(name="app1", schedule="*/10 * * * * *", config={"message": "hi"}))
result = manager.run_task("app1")     # runs now, in this thread
manager.start()                       # scheduled runs in the background
...
manager.stop()
print(manager.results())              # the last 100 results
```

Sending notifications through the log pusher:

```python
from task_scheduler.push.api import PushAPI, default_config, default_push_options
from task_scheduler.push.types import PushMethod, new_normal_message

with PushAPI() as api:
    api.initialize(default_config(), PushMethod.LOGGER)
    api.push_now(new_normal_message("app1", "Hello", "First message"), default_push_options())
    api.enqueue(new_normal_message("app1", "Later", "Batched message"), default_push_options())
    api.flush_queue()
```

Delayed messages are stored in four-hour slot files
(`delay_YYYYMMDD_HH.json`) in the working directory and are merged and
sent together on a flush, after any immediate push, after scheduled
messages fire, and every four hours. Scheduled messages live in
`scheduled_YYYYMMDD_HH.json` files and are checked once a minute.
Sent and failed pushes are recorded in `success_send_YYYYMM.json` and
`failed_send_YYYYMM.json` in the history directory
(`task_scheduler.push.history.HistoryHandler`).

## What it does not do

- The `log_level` and `plugins_dir` settings are checked for being
  non-empty but have no other effect: the command always logs at INFO
  level, and plugins are not loaded from a directory. The command
  registers only the auto-buy plugin; `App1Plugin` and `App2Plugin` in
  `task_scheduler.apps` are available for library use only.
- There is no server, web page or status command; task results are kept in
  memory and are only reachable through `TaskManager.results()`.
- `EmailPusher` and `SMSPusher` write deliveries to the log; they send no
  e-mail and no text messages.
- The WeChat pusher delivers through the ServerChan service and needs a
  real send key in `WeChatConfig.send_key`; the default is a placeholder,
  and the auto-buy task's reports use that default, so they are not
  delivered until the code is given a key.