"""Dashboard HTML with inline CSS and vanilla JS."""


def get_dashboard_html() -> str:
    return """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Workforce</title>
<style>
  :root {
    --bg: #0d1117; --surface: #161b22; --border: #30363d;
    --text: #e6edf3; --text-muted: #8b949e; --text-dim: #6e7681;
    --ready: #8b949e; --pending: #d29922; --processing: #58a6ff;
    --succeeded: #3fb950; --failed: #f85149; --cancelled: #6e7681;
  }
  * { margin: 0; padding: 0; box-sizing: border-box; }
  body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Helvetica, Arial, sans-serif;
         background: var(--bg); color: var(--text); line-height: 1.5; }
  .container { max-width: 1100px; margin: 0 auto; padding: 24px 16px; }
  header { display: flex; justify-content: space-between; align-items: center;
           padding-bottom: 16px; border-bottom: 1px solid var(--border); margin-bottom: 24px; }
  header h1 { font-size: 20px; font-weight: 600; }
  .agents { font-size: 13px; color: var(--text-muted); }
  .layout { display: grid; grid-template-columns: 2fr 1fr; gap: 24px; }

  /* Summary bar */
  .summary { display: flex; gap: 16px; align-items: center; margin-bottom: 24px; flex-wrap: wrap; }
  .stat { display: flex; align-items: center; gap: 6px; font-size: 14px; }
  .stat .dot { width: 10px; height: 10px; border-radius: 50%; display: inline-block; }

  /* Task tree */
  .task-list { display: flex; flex-direction: column; gap: 2px; }
  .task-card { background: var(--surface); border: 1px solid var(--border);
               border-radius: 8px; padding: 10px 14px; }
  .task-card.subtask { border-left: 3px solid var(--border); }
  .task-header { display: flex; align-items: center; gap: 10px; }
  .badge { display: inline-block; padding: 2px 10px; border-radius: 12px; font-size: 11px;
           font-weight: 600; text-transform: uppercase; letter-spacing: 0.5px; }
  .task-title { font-weight: 600; font-size: 14px; }
  .task-id { font-size: 12px; color: var(--text-dim); font-family: monospace; }
  .task-details { margin-top: 4px; font-size: 13px; color: var(--text-muted); }

  /* Event feed */
  .events { background: var(--surface); border: 1px solid var(--border); border-radius: 8px;
            padding: 12px; font-size: 12px; font-family: monospace; max-height: 70vh; overflow-y: auto; }
  .event { padding: 2px 0; border-bottom: 1px solid var(--border); color: var(--text-muted); }
  .event .type { color: var(--text); }

  .empty { text-align: center; padding: 48px; color: var(--text-muted); }
  .empty h3 { margin-bottom: 8px; }
</style>
</head>
<body>
<div class="container">
  <header>
    <h1>Workforce</h1>
    <span class="agents" id="agents"></span>
  </header>
  <div id="summary" class="summary"></div>
  <div class="layout">
    <div id="tasks"></div>
    <div><div class="events" id="events"></div></div>
  </div>
</div>

<script>
const STATUSES = ['ready', 'pending', 'processing', 'succeeded', 'failed', 'cancelled'];
let lastSeq = 0;

async function fetchJSON(path) {
  const res = await fetch(path);
  if (!res.ok) return null;
  return res.json();
}

async function loadTasks() {
  const [tasks, summary] = await Promise.all([
    fetchJSON('/api/tasks'),
    fetchJSON('/api/summary'),
  ]);

  if (summary) {
    document.getElementById('agents').textContent =
      `${summary.agents_busy}/${summary.max_agents} agents busy` +
      (summary.destroyed ? ' (destroyed)' : '');
    document.getElementById('summary').innerHTML = STATUSES.map(s =>
      `<span class="stat"><span class="dot" style="background:var(--${s})"></span>
       ${summary.counts[s] || 0} ${s}</span>`).join('');
  }

  const el = document.getElementById('tasks');
  if (!tasks || tasks.length === 0) {
    el.innerHTML = '<div class="empty"><h3>No tasks yet</h3><p>Create tasks with <code>POST /api/tasks</code></p></div>';
    return;
  }
  el.innerHTML = '<div class="task-list">' + tasks.map(t => renderTask(t, 0)).join('') + '</div>';
}

function renderTask(task, depth) {
  const cls = depth > 0 ? 'task-card subtask' : 'task-card';
  let details = '';
  if (task.goal) details += `<div>${esc(task.goal)}</div>`;
  if (task.result) details += `<div>Result: ${esc(task.result)}</div>`;
  if (task.error) details += `<div>Error: ${esc(task.error)}</div>`;

  let html = `<div class="${cls}" style="margin-left:${depth * 28}px">
    <div class="task-header">
      <span class="badge" style="color:var(--${task.status})">${esc(task.status)}</span>
      <span class="task-title">${esc(task.title)}</span>
      <span class="task-id">${esc(task.id)}</span>
    </div>
    ${details ? `<div class="task-details">${details}</div>` : ''}
  </div>`;
  for (const child of task.children || []) {
    html += renderTask(child, depth + 1);
  }
  return html;
}

async function loadEvents() {
  const events = await fetchJSON(`/api/events?after=${lastSeq}`);
  if (!events || events.length === 0) return;
  const el = document.getElementById('events');
  for (const e of events) {
    lastSeq = Math.max(lastSeq, e.seq);
    const line = document.createElement('div');
    line.className = 'event';
    const extra = e.payload.conclusion || e.payload.error || e.payload.reason || e.payload.title || '';
    line.innerHTML = `#${e.seq} <span class="type">${esc(e.type)}</span> ${esc(e.task_id)} ${esc(extra)}`;
    el.prepend(line);
  }
  loadTasks();
}

function esc(s) {
  if (!s) return '';
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}

loadTasks();
loadEvents();
setInterval(loadEvents, 2000);
setInterval(loadTasks, 30000);
</script>
</body>
</html>"""
